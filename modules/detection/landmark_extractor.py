"""
21-point hand landmark indexing and conversion of detector output
into HandPose arrays for the classifier.
"""

import logging
import numpy as np

from core.types import NUM_LANDMARKS, to_hand_pose

logger = logging.getLogger(__name__)

# MediaPipe hand landmark indices
WRIST = 0
THUMB_CMC = 1
THUMB_MCP = 2
THUMB_IP = 3
THUMB_TIP = 4
INDEX_MCP = 5
INDEX_PIP = 6
INDEX_DIP = 7
INDEX_TIP = 8
MIDDLE_MCP = 9
MIDDLE_PIP = 10
MIDDLE_DIP = 11
MIDDLE_TIP = 12
RING_MCP = 13
RING_PIP = 14
RING_DIP = 15
RING_TIP = 16
PINKY_MCP = 17
PINKY_PIP = 18
PINKY_DIP = 19
PINKY_TIP = 20

# Finger joint chains: (MCP/CMC, PIP/IP, DIP, TIP), base to tip
FINGER_JOINTS = {
    "thumb":  (THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP),
    "index":  (INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP),
    "middle": (MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP),
    "ring":   (RING_MCP, RING_PIP, RING_DIP, RING_TIP),
    "pinky":  (PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP),
}


class LandmarkExtractor:
    """Turns MediaPipe detection results into (21, 3) HandPose arrays."""

    def extract_landmarks(self, hand_landmarks) -> np.ndarray:
        """Convert one MediaPipe hand to a numpy array of (x, y, z).

        Returns:
            np.ndarray of shape (21, 3), or None if the hand is incomplete
        """
        points = getattr(hand_landmarks, "landmark", hand_landmarks)
        pose = to_hand_pose(points)
        if pose is None:
            logger.debug("Discarding incomplete hand (%d landmarks)",
                         len(points) if points is not None else 0)
        return pose

    def primary_pose(self, results) -> np.ndarray:
        """Pick the first detected hand from a MediaPipe results object.

        Returns:
            np.ndarray of shape (21, 3), or None when no hand was detected
        """
        hands = getattr(results, "multi_hand_landmarks", None) if results else None
        if not hands:
            return None
        return self.extract_landmarks(hands[0])

    @staticmethod
    def get_bounding_box(landmarks: np.ndarray, padding: float = 0.02) -> tuple:
        """Normalized (x, y, w, h) box around the hand, clipped to [0, 1]."""
        xs = landmarks[:NUM_LANDMARKS, 0]
        ys = landmarks[:NUM_LANDMARKS, 1]
        x1 = max(0.0, float(xs.min()) - padding)
        y1 = max(0.0, float(ys.min()) - padding)
        x2 = min(1.0, float(xs.max()) + padding)
        y2 = min(1.0, float(ys.max()) + padding)
        return (x1, y1, x2 - x1, y2 - y1)
