"""
Camera-backed pose source: one HandPose (or None) per captured frame.
"""

import time
import logging
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

from modules.capture.camera_manager import CameraManager
from modules.detection.hand_detector import HandDetector
from modules.detection.landmark_extractor import LandmarkExtractor
from modules.utils.logger import log_timing
from modules.utils.performance_monitor import PerformanceMonitor

logger = logging.getLogger(__name__)

PoseSample = Tuple[Optional[np.ndarray], float]  # (pose, timestamp_ms)


class CameraPoseSource:
    """Iterates ``(pose, timestamp_ms)`` until stopped or closed.

    Only new camera frames are processed; a frame captured while the
    previous one was being handled is skipped, never queued.
    """

    def __init__(self, camera_config: dict, mediapipe_config: dict,
                 camera: CameraManager = None, detector: HandDetector = None,
                 performance_monitor: PerformanceMonitor = None):
        self._camera = camera or CameraManager(camera_config)
        self._detector = detector or HandDetector(mediapipe_config)
        self._perf = performance_monitor
        self._extractor = LandmarkExtractor()
        self._last_frame_id = None
        self._running = False
        self.last_frame = None
        self.last_results = None

    @log_timing
    def open(self) -> bool:
        if not self._camera.open():
            return False
        self._camera.start_async()
        self._detector.initialize()
        self._running = True
        return True

    def stop(self):
        """End iteration; the camera and detector stay open until ``close``."""
        self._running = False

    def close(self):
        self._running = False
        self._camera.stop()
        self._detector.close()

    def poll(self) -> Optional[PoseSample]:
        """Process the newest frame, or return None if no new frame is ready."""
        frame_id, frame, timestamp_ms = self._camera.read()
        if frame is None or frame_id == self._last_frame_id:
            return None
        self._last_frame_id = frame_id

        if self._perf is None:
            pose = self._detect(frame)
        else:
            with self._perf.measure("pose"):
                pose = self._detect(frame)
        return pose, timestamp_ms

    def _detect(self, frame):
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self._detector.detect(rgb)
        self.last_frame = frame
        self.last_results = results
        return self._extractor.primary_pose(results)

    def __iter__(self) -> Iterator[PoseSample]:
        while self._running:
            sample = self.poll()
            if sample is None:
                time.sleep(0.002)
                continue
            yield sample

    @property
    def detector(self) -> HandDetector:
        return self._detector

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()
