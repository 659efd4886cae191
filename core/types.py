"""
Shared domain types for the Sign Relay system.

Centralizes enums, data classes, and type definitions used across modules
to eliminate circular imports and ensure type consistency.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, NamedTuple
import numpy as np


NUM_LANDMARKS = 21


# =============================================================================
# Letter Symbols
# =============================================================================

class Letter(Enum):
    """Closed set of fingerspelled letters the classifier can recognize.

    "No recognized letter this frame" is represented by ``None``.
    """
    A = "A"
    B = "B"
    C = "C"
    I = "I"  # noqa: E741
    L = "L"
    V = "V"
    Y = "Y"

    @classmethod
    def from_string(cls, text: str) -> Optional['Letter']:
        """Convert a payload string to a Letter, or None if it is not one."""
        try:
            return cls(text)
        except ValueError:
            return None

    def __str__(self):
        return self.value


# =============================================================================
# Hand Skeleton
# =============================================================================

class Landmark(NamedTuple):
    """One normalized hand joint (origin top-left, y grows downward)."""
    x: float
    y: float
    z: float = 0.0


def to_hand_pose(landmarks) -> Optional[np.ndarray]:
    """Convert a landmark sequence to a (21, 3) float array.

    Accepts an ndarray, a sequence of ``Landmark``/3-tuples, or a sequence of
    objects with ``x``/``y``/``z`` attributes (MediaPipe NormalizedLandmark).

    Returns:
        np.ndarray of shape (21, 3), or None when fewer than 21 landmarks
        are present (treated as "no hand").
    """
    if landmarks is None:
        return None

    if isinstance(landmarks, np.ndarray):
        if landmarks.ndim != 2 or landmarks.shape[0] < NUM_LANDMARKS or landmarks.shape[1] < 2:
            return None
        pose = np.zeros((NUM_LANDMARKS, 3), dtype=np.float64)
        cols = min(landmarks.shape[1], 3)
        pose[:, :cols] = landmarks[:NUM_LANDMARKS, :cols]
        return pose

    points = list(landmarks)
    if len(points) < NUM_LANDMARKS:
        return None

    pose = np.zeros((NUM_LANDMARKS, 3), dtype=np.float64)
    for i, lm in enumerate(points[:NUM_LANDMARKS]):
        if hasattr(lm, "x"):
            pose[i] = [lm.x, lm.y, getattr(lm, "z", 0.0)]
        else:
            pose[i, :len(lm[:3])] = lm[:3]
    return pose


# =============================================================================
# Data Containers
# =============================================================================

@dataclass(frozen=True)
class RelayMessage:
    """A confirmed letter on its way to (or from) the remote peer."""
    letter: str
    sender_id: str

    @property
    def payload(self) -> str:
        return self.letter


@dataclass(frozen=True)
class DebounceState:
    """Snapshot of a Hold Debouncer's internal state.

    ``held_since`` is None exactly when ``candidate`` is None and the
    debouncer is idle.
    """
    candidate: Optional[Letter] = None
    held_since: Optional[float] = None


class SessionState:
    """Mutable per-session state, observed by the CLI preview and logs.

    Owned by a single SignRelaySession; not shared across sessions.
    """

    __slots__ = (
        "hand_detected", "detected_letter", "last_sent", "last_received",
        "frame_count", "dropped_frames", "hold_progress", "running",
    )

    def __init__(self):
        self.hand_detected: bool = False
        self.detected_letter: Optional[Letter] = None
        self.last_sent: Optional[Letter] = None
        self.last_received: Optional[Letter] = None
        self.frame_count: int = 0
        self.dropped_frames: int = 0
        self.hold_progress: float = 0.0
        self.running: bool = False

    def to_dict(self) -> dict:
        return {
            "hand_detected": self.hand_detected,
            "detected_letter": str(self.detected_letter) if self.detected_letter else None,
            "last_sent": str(self.last_sent) if self.last_sent else None,
            "last_received": str(self.last_received) if self.last_received else None,
            "frame_count": self.frame_count,
            "dropped_frames": self.dropped_frames,
            "hold_progress": self.hold_progress,
            "running": self.running,
        }
