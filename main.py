#!/usr/bin/env python3
"""
Sign Relay - fingerspelled letters to a remote peer's speaker.
Main application entry point.

Hold a letter (A, B, C, I, L, V, Y) in front of the camera for a second;
the letter is sent to everyone in the same relay channel and spoken there
as "Letter V".

Usage:
    python main.py                         # Join the default channel
    python main.py --channel room42        # Join a named channel
    python main.py --loopback --preview    # Single machine, hear yourself
    python main.py --speech log            # Log announcements instead of speaking
"""

import sys
import os
import signal
import argparse
import logging

import cv2

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from modules.utils.config import Config
from modules.utils.logger import setup_logging, RelayLogger
from modules.utils.performance_monitor import PerformanceMonitor
from modules.detection.pose_source import CameraPoseSource
from modules.detection.landmark_extractor import LandmarkExtractor
from modules.recognition.gesture_classifier import GestureClassifier
from modules.control.debouncer import HoldDebouncer
from modules.relay.channels import create_channel, ChannelError
from modules.relay.protocol import RelayProtocol
from modules.speech.engines import create_engine
from modules.speech.announcer import AnnouncementThrottle

from core.events import EventBus
from core.pipeline import SignRelaySession

logger = logging.getLogger(__name__)


class SignRelayApp:
    """Wires camera, session, channel and speech together for one call."""

    def __init__(self, config: Config):
        self._config = config

        self._bus = EventBus()
        self._relay_logger = RelayLogger()
        self._relay_logger.attach(self._bus)

        self._perf = PerformanceMonitor(
            window_size=config.get("performance.metrics_window", 100)
        )
        self._pose_source = CameraPoseSource(
            config.camera, config.mediapipe, performance_monitor=self._perf
        )
        self._channel = create_channel(config.relay)
        self._engine = create_engine(config.speech)

        self._session = SignRelaySession(
            classifier=GestureClassifier(config.recognition),
            debouncer=HoldDebouncer(config.debouncing),
            relay=RelayProtocol(self._channel),
            announcer=AnnouncementThrottle(self._engine, config.speech),
            event_bus=self._bus,
            performance_monitor=self._perf,
        )

        self._preview = config.get("visualization.preview", False)
        self._window_name = config.get("visualization.window_name", "Sign Relay")

    def start(self) -> bool:
        try:
            self._channel.connect()
        except ChannelError as e:
            logger.error("%s", e)
            return False

        if not self._pose_source.open():
            logger.error("Failed to open camera. Check connection and permissions.")
            self._channel.close()
            return False

        try:
            self._session.run(self._pose_source, on_frame=self._on_frame if self._preview else None)
        finally:
            self._shutdown()
        return True

    def _on_frame(self, session: SignRelaySession):
        frame = self._pose_source.last_frame
        if frame is None:
            return
        results = self._pose_source.last_results
        self._pose_source.detector.draw_landmarks(frame, results)
        state = session.state
        h, w = frame.shape[:2]

        if state.detected_letter is not None:
            pose = LandmarkExtractor().primary_pose(results)
            if pose is not None:
                x, y, bw, bh = LandmarkExtractor.get_bounding_box(pose)
                color = (0, 200, 0) if state.hold_progress >= 1.0 else (0, 200, 255)
                cv2.rectangle(frame, (int(x * w), int(y * h)),
                              (int((x + bw) * w), int((y + bh) * h)), color, 2)
            cv2.putText(frame, state.detected_letter.value, (20, 80),
                        cv2.FONT_HERSHEY_SIMPLEX, 2.5, (255, 140, 0), 5)
            cv2.rectangle(frame, (20, 95), (20 + int(160 * state.hold_progress), 105),
                          (255, 140, 0), -1)
        if state.last_received is not None:
            cv2.putText(frame, "Received: %s" % state.last_received.value, (20, h - 20),
                        cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 200, 0), 2)

        cv2.imshow(self._window_name, frame)
        if cv2.waitKey(1) & 0xFF == ord("q"):
            self._session.stop()

    def _shutdown(self):
        """Clean shutdown of all modules."""
        logger.info("Shutting down...")
        self._session.stop()
        self._pose_source.close()
        self._channel.close()
        self._engine.close()
        if self._preview:
            cv2.destroyAllWindows()
        self._perf.print_report()
        logger.info("Letters sent: %d", self._relay_logger.total_sent)
        logger.info("Shutdown complete.")

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._session.stop()
        self._pose_source.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Sign Relay - send fingerspelled letters to a remote peer"
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--camera", type=int, default=None, help="Camera device ID")
    parser.add_argument("--channel", type=str, default=None, help="Relay channel (room) name")
    parser.add_argument("--server", type=str, default=None, help="Relay server URL")
    parser.add_argument("--loopback", action="store_true",
                        help="No server: hear your own letters")
    parser.add_argument("--speech", choices=["pyttsx3", "log"], default=None,
                        help="Speech backend")
    parser.add_argument("--preview", action="store_true", help="Show camera preview window")
    parser.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING...")
    return parser.parse_args(argv)


def build_overrides(args) -> dict:
    """Translate CLI flags into a config overlay."""
    overrides = {}
    if args.camera is not None:
        overrides.setdefault("camera", {})["device_id"] = args.camera
    if args.channel:
        overrides.setdefault("relay", {})["channel"] = args.channel
    if args.server:
        overrides.setdefault("relay", {})["server_url"] = args.server
    if args.loopback:
        overrides.setdefault("relay", {})["backend"] = "loopback"
    if args.speech:
        overrides.setdefault("speech", {})["backend"] = args.speech
    if args.preview:
        overrides.setdefault("visualization", {})["preview"] = True
    if args.log_level:
        overrides.setdefault("logging", {})["level"] = args.log_level
    return overrides


def main(argv=None):
    args = parse_args(argv)

    config = Config()
    config.load(config_path=args.config)
    config.update(build_overrides(args))

    log_cfg = config.get_section("logging")
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    logger.info("=" * 60)
    logger.info("  SIGN RELAY")
    logger.info("  Version: %s", config.get("system.version", "1.0.0"))
    logger.info("  Channel: %s (%s)", config.get("relay.channel"), config.get("relay.backend"))
    logger.info("=" * 60)

    app = SignRelayApp(config)

    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    return 0 if app.start() else 1


if __name__ == "__main__":
    sys.exit(main())
