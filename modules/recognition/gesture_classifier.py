"""
Rule-based fingerspelling classifier: one hand skeleton -> one letter.

Pure geometry on normalized landmarks (y grows downward, so a raised
joint has a *smaller* y). Rules are evaluated top-to-bottom and the first
match wins. Several rules test overlapping finger combinations, so the
order below decides the outcome for ambiguous hands and must not change.

    A  fist (no finger extended)
    B  all four fingers extended
    L  index + thumb
    V  index + middle, thumb tucked
    I  pinky only, thumb tucked
    Y  thumb + pinky
    C  thumb + index + middle, tips level, thumb held apart
"""

import logging
from typing import NamedTuple, Optional
import numpy as np

from core.types import Letter, to_hand_pose
from modules.detection.landmark_extractor import (
    FINGER_JOINTS, THUMB_MCP, THUMB_IP, THUMB_TIP, INDEX_TIP, MIDDLE_TIP,
)

logger = logging.getLogger(__name__)

# Empirical thresholds, in normalized image units
THUMB_SPREAD_MIN_DX = 0.05      # thumb tip vs IP, horizontal offset => thumb out
C_THUMB_GAP_MIN_DX = 0.08       # thumb tip vs index/middle tips for "C"
C_TIPS_LEVEL_MAX_DY = 0.10      # index vs middle tip height for "C"


class Thresholds(NamedTuple):
    thumb_spread: float = THUMB_SPREAD_MIN_DX
    c_thumb_gap: float = C_THUMB_GAP_MIN_DX
    c_tips_level: float = C_TIPS_LEVEL_MAX_DY


DEFAULT_THRESHOLDS = Thresholds()


def is_finger_extended(landmarks: np.ndarray, finger: str) -> bool:
    """True if tip is above PIP and PIP is above MCP (a straight finger)."""
    mcp, pip, _dip, tip = FINGER_JOINTS[finger]
    return bool(landmarks[tip, 1] < landmarks[pip, 1] < landmarks[mcp, 1])


def is_thumb_extended(landmarks: np.ndarray, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> bool:
    """Thumb counts as out if pushed sideways or pointing straight up."""
    tip, ip, mcp = landmarks[THUMB_TIP], landmarks[THUMB_IP], landmarks[THUMB_MCP]
    if abs(tip[0] - ip[0]) > thresholds.thumb_spread:
        return True
    return bool(tip[1] < ip[1] < mcp[1])


def classify(landmarks, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> Optional[Letter]:
    """Classify a hand skeleton.

    Args:
        landmarks: (21, 3) array of normalized coordinates, or None
        thresholds: tuning constants, defaults to the module constants

    Returns:
        The matched Letter, or None if the pose is invalid or no rule matches
    """
    landmarks = to_hand_pose(landmarks)
    if landmarks is None:
        return None

    index = is_finger_extended(landmarks, "index")
    middle = is_finger_extended(landmarks, "middle")
    ring = is_finger_extended(landmarks, "ring")
    pinky = is_finger_extended(landmarks, "pinky")
    thumb = is_thumb_extended(landmarks, thresholds)

    if not (index or middle or ring or pinky):
        return Letter.A

    if index and middle and ring and pinky:
        return Letter.B

    if index and thumb and not (middle or ring or pinky):
        return Letter.L

    if index and middle and not (ring or pinky or thumb):
        return Letter.V

    if pinky and not (index or middle or ring or thumb):
        return Letter.I

    if thumb and pinky and not (index or middle or ring):
        return Letter.Y

    if thumb and index and middle:
        thumb_x = landmarks[THUMB_TIP, 0]
        index_tip = landmarks[INDEX_TIP]
        middle_tip = landmarks[MIDDLE_TIP]
        if (abs(thumb_x - index_tip[0]) > thresholds.c_thumb_gap
                and abs(thumb_x - middle_tip[0]) > thresholds.c_thumb_gap
                and abs(index_tip[1] - middle_tip[1]) < thresholds.c_tips_level):
            return Letter.C

    return None


class GestureClassifier:
    """Stateless classifier holding the thresholds loaded from config.

    Safe to share between sessions: ``classify`` reads no mutable state.
    """

    def __init__(self, config: dict = None):
        config = config or {}
        thresholds = config.get("thresholds", {})
        self._thresholds = Thresholds(
            thumb_spread=thresholds.get("thumb_spread", THUMB_SPREAD_MIN_DX),
            c_thumb_gap=thresholds.get("c_thumb_gap", C_THUMB_GAP_MIN_DX),
            c_tips_level=thresholds.get("c_tips_level", C_TIPS_LEVEL_MAX_DY),
        )
        if self._thresholds != DEFAULT_THRESHOLDS:
            logger.info("Classifier thresholds overridden: %s", self._thresholds._asdict())

    def classify(self, landmarks) -> Optional[Letter]:
        return classify(landmarks, self._thresholds)

    @property
    def thresholds(self) -> Thresholds:
        return self._thresholds
