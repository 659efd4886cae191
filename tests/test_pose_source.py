"""
Tests for Landmark Extraction and the Camera Pose Source
=========================================================
"""

import threading
import time
import pytest
import numpy as np
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).parent.parent))

pytest.importorskip("mediapipe")

from core.types import Letter
from modules.detection.landmark_extractor import LandmarkExtractor, FINGER_JOINTS, INDEX_TIP
from modules.detection.pose_source import CameraPoseSource
from core.pipeline import SignRelaySession
from modules.control.debouncer import HoldDebouncer
from modules.recognition.gesture_classifier import GestureClassifier, classify
from modules.relay.channels import LoopbackChannel
from modules.relay.protocol import RelayProtocol
from modules.speech.announcer import AnnouncementThrottle
from modules.speech.engines import LogSpeechEngine
from modules.utils.performance_monitor import PerformanceMonitor
from hand_factory import letter_pose


def mediapipe_results(*poses):
    """Results object shaped like MediaPipe Hands output."""
    if not poses:
        return SimpleNamespace(multi_hand_landmarks=None)
    hands = [
        SimpleNamespace(landmark=[SimpleNamespace(x=r[0], y=r[1], z=r[2]) for r in pose])
        for pose in poses
    ]
    return SimpleNamespace(multi_hand_landmarks=hands)


class FakeCamera:
    def __init__(self, frames):
        self._frames = list(frames)  # (frame_id, timestamp_ms)
        self.opened = False
        self.stopped = False

    def open(self):
        self.opened = True
        return True

    def start_async(self):
        pass

    def read(self):
        if not self._frames:
            return None, None, None
        frame_id, ts = self._frames[0]
        if len(self._frames) > 1:
            self._frames.pop(0)
        return frame_id, np.zeros((4, 4, 3), dtype=np.uint8), ts

    def stop(self):
        self.stopped = True


class FakeDetector:
    def __init__(self, results):
        self._results = list(results)
        self.calls = 0
        self.closed = False

    def initialize(self):
        pass

    def detect(self, rgb):
        self.calls += 1
        return self._results.pop(0) if self._results else mediapipe_results()

    def close(self):
        self.closed = True


class TestLandmarkExtractor:

    def test_primary_pose_from_results(self):
        pose = LandmarkExtractor().primary_pose(mediapipe_results(letter_pose("Y")))
        assert pose.shape == (21, 3)
        assert classify(pose) == Letter.Y

    def test_first_hand_wins(self):
        results = mediapipe_results(letter_pose("V"), letter_pose("B"))
        assert classify(LandmarkExtractor().primary_pose(results)) == Letter.V

    def test_no_hand(self):
        extractor = LandmarkExtractor()
        assert extractor.primary_pose(mediapipe_results()) is None
        assert extractor.primary_pose(None) is None

    def test_incomplete_hand(self):
        hand = SimpleNamespace(landmark=[SimpleNamespace(x=0.5, y=0.5, z=0.0)] * 12)
        assert LandmarkExtractor().extract_landmarks(hand) is None

    def test_bounding_box(self):
        x, y, w, h = LandmarkExtractor.get_bounding_box(letter_pose("B"), padding=0.0)
        assert (x, y) == pytest.approx((0.42, 0.40))
        assert (w, h) == pytest.approx((0.18, 0.40))

    def test_finger_chains(self):
        assert FINGER_JOINTS["index"][-1] == INDEX_TIP
        assert len(FINGER_JOINTS) == 5


class TestCameraPoseSource:

    def test_poll_yields_pose_and_timestamp(self):
        camera = FakeCamera([(1, 33.0)])
        detector = FakeDetector([mediapipe_results(letter_pose("L"))])
        source = CameraPoseSource({}, {}, camera=camera, detector=detector)
        assert source.open()

        pose, ts = source.poll()
        assert ts == 33.0
        assert classify(pose) == Letter.L
        assert source.last_results is not None

    def test_same_frame_not_processed_twice(self):
        camera = FakeCamera([(1, 0.0)])
        detector = FakeDetector([mediapipe_results()])
        source = CameraPoseSource({}, {}, camera=camera, detector=detector)
        source.open()

        assert source.poll() == (None, 0.0)
        assert source.poll() is None
        assert detector.calls == 1

    def test_no_frame_yet(self):
        source = CameraPoseSource({}, {}, camera=FakeCamera([]), detector=FakeDetector([]))
        assert source.poll() is None

    def test_iterates_until_closed(self):
        camera = FakeCamera([(1, 0.0), (2, 33.0), (3, 66.0)])
        detector = FakeDetector([mediapipe_results(letter_pose("A"))] * 3)
        source = CameraPoseSource({}, {}, camera=camera, detector=detector)

        samples = []
        with source:
            for pose, ts in source:
                samples.append(ts)
                if len(samples) == 3:
                    source.close()
        assert samples == [0.0, 33.0, 66.0]
        assert camera.stopped and detector.closed

    def test_detection_timed_as_pose_stage(self):
        monitor = PerformanceMonitor()
        camera = FakeCamera([(1, 0.0)])
        detector = FakeDetector([mediapipe_results(letter_pose("V"))])
        source = CameraPoseSource({}, {}, camera=camera, detector=detector,
                                  performance_monitor=monitor)
        source.open()
        source.poll()
        source.poll()  # same frame, not timed
        assert len(monitor._stage_times["pose"]) == 1


class TestStalledCamera:

    def test_session_stop_ends_run(self):
        """A camera that never delivers a frame must not keep run() alive."""
        source = CameraPoseSource({}, {}, camera=FakeCamera([]), detector=FakeDetector([]))
        assert source.open()
        channel, _ = LoopbackChannel.pair()
        session = SignRelaySession(
            classifier=GestureClassifier({}),
            debouncer=HoldDebouncer(),
            relay=RelayProtocol(channel),
            announcer=AnnouncementThrottle(LogSpeechEngine()),
        )

        worker = threading.Thread(target=session.run, args=(source,), daemon=True)
        worker.start()
        deadline = time.monotonic() + 2.0
        while not session.is_running and time.monotonic() < deadline:
            time.sleep(0.005)

        session.stop()
        worker.join(timeout=2.0)
        assert not worker.is_alive()
        source.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
