"""
Session orchestrator for one call: classify -> debounce -> relay -> announce.

Architecture:
    pose source -> GestureClassifier -> HoldDebouncer -> RelayProtocol.send
    -> message channel -> (peer) RelayProtocol.receive -> AnnouncementThrottle

All collaborators are passed in; nothing is looked up globally. The
classifier may be shared, but the debouncer and throttle belong to exactly
one session.

Frames enter through ``on_pose`` and inbound messages through
``on_message``. A frame that arrives while the previous one is still being
processed is dropped, and unparseable messages are dropped; neither is
ever queued. Relay sends and speech run fire-and-forget so the frame path
never waits on the network or audio.
"""

import time
import logging
import threading
from typing import Callable, Iterable, Optional, Tuple

from core.types import Letter, SessionState, to_hand_pose
from core.events import EventBus, Events
from modules.recognition.gesture_classifier import GestureClassifier
from modules.control.debouncer import HoldDebouncer
from modules.relay.protocol import RelayProtocol
from modules.speech.announcer import AnnouncementThrottle
from modules.utils.performance_monitor import PerformanceMonitor

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class SignRelaySession:
    """Runs the letter pipeline for one participant in one call."""

    def __init__(
        self,
        classifier: GestureClassifier,
        debouncer: HoldDebouncer,
        relay: RelayProtocol,
        announcer: AnnouncementThrottle,
        event_bus: EventBus = None,
        clock: Callable[[], float] = None,
        performance_monitor: PerformanceMonitor = None,
    ):
        self._classifier = classifier
        self._debouncer = debouncer
        self._relay = relay
        self._announcer = announcer
        self._bus = event_bus or EventBus()
        self._clock = clock or _monotonic_ms
        self._perf = performance_monitor or PerformanceMonitor()

        self._state = SessionState()
        self._busy = threading.Lock()
        self._source = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Begin a call: listen to the channel and start from an idle hold."""
        if self._state.running:
            return
        self._debouncer.reset()
        self._relay.channel.add_listener(self.on_message)
        self._state.running = True
        self._bus.emit(Events.SESSION_STARTED, sender_id=self._relay.sender_id)
        logger.info("Session started (id=%s)", self._relay.sender_id)

    def stop(self):
        """End the call: stop taking frames and cancel speech.

        The debouncer is left as-is; ``start`` resets it on the next call.
        A source being driven by ``run`` is asked to stop yielding, so a
        stalled camera cannot keep ``run`` blocked.
        """
        if not self._state.running:
            return
        self._state.running = False
        source = self._source
        if source is not None and hasattr(source, "stop"):
            source.stop()
        self._relay.channel.remove_listener(self.on_message)
        self._announcer.stop()
        self._bus.emit(Events.SESSION_STOPPED, frames=self._state.frame_count)
        logger.info("Session stopped after %d frames (%d dropped)",
                    self._state.frame_count, self._state.dropped_frames)

    def run(self, pose_source: Iterable[Tuple[object, float]],
            on_frame: Callable[['SignRelaySession'], None] = None):
        """Drive the session from an iterable of ``(pose, timestamp_ms)``.

        Returns when the source is exhausted or ``stop`` is called. Sources
        with a ``stop()`` method are stopped along with the session.
        """
        self._source = pose_source
        self.start()
        try:
            for pose, timestamp_ms in pose_source:
                if not self._state.running:
                    break
                self.on_pose(pose, timestamp_ms)
                if on_frame is not None:
                    on_frame(self)
        finally:
            self._source = None

    # ------------------------------------------------------------------
    # Outbound: frames
    # ------------------------------------------------------------------

    def on_pose(self, pose, now: float = None) -> Optional[Letter]:
        """Ingest one frame's hand skeleton (or None).

        Returns:
            The letter handed to the channel on this frame, if any
        """
        if not self._state.running:
            return None
        if not self._busy.acquire(blocking=False):
            self._state.dropped_frames += 1
            self._perf.record_drop()
            return None
        try:
            if now is None:
                now = self._clock()
            with self._perf.measure("total"):
                return self._process_pose(pose, now)
        finally:
            self._busy.release()

    def _process_pose(self, pose, now: float) -> Optional[Letter]:
        self._state.frame_count += 1
        self._perf.tick()

        hand = to_hand_pose(pose)
        if hand is None:
            if self._state.hand_detected:
                self._bus.emit(Events.HAND_LOST)
            self._state.hand_detected = False
            self._clear_detection()
            return None

        if not self._state.hand_detected:
            self._bus.emit(Events.HAND_DETECTED)
        self._state.hand_detected = True

        with self._perf.measure("classify"):
            letter = self._classifier.classify(hand)

        if letter != self._state.detected_letter:
            self._bus.emit(Events.LETTER_DETECTED, letter=letter.value if letter else None)

        if letter is None:
            self._clear_detection()
            return None
        self._state.detected_letter = letter

        with self._perf.measure("debounce"):
            confirmed = self._debouncer.process(letter, now)
        self._state.hold_progress = self._debouncer.hold_progress(now)
        if confirmed is None:
            return None

        self._bus.emit(Events.LETTER_CONFIRMED, letter=confirmed.value)
        with self._perf.measure("relay"):
            sent = self._relay.send(confirmed)
        if not sent:
            # Not acknowledged: the next frame of this hold tries again
            self._bus.emit(Events.SEND_FAILED, letter=confirmed.value)
            return None

        self._debouncer.acknowledge()
        self._state.last_sent = confirmed
        self._bus.emit(Events.LETTER_SENT, letter=confirmed.value)
        return confirmed

    def _clear_detection(self):
        self._debouncer.reset()
        self._state.detected_letter = None
        self._state.hold_progress = 0.0

    # ------------------------------------------------------------------
    # Inbound: messages
    # ------------------------------------------------------------------

    def on_message(self, payload, sender_id: str) -> Optional[Letter]:
        """Ingest one channel delivery; announce it if it carries a letter."""
        if not self._state.running:
            return None
        if sender_id == self._relay.sender_id:
            return None

        letter = self._relay.receive(payload, sender_id)
        if letter is None:
            self._bus.emit(Events.MESSAGE_DROPPED, payload=payload, sender_id=sender_id)
            return None

        self._state.last_received = letter
        self._bus.emit(Events.MESSAGE_RECEIVED, letter=letter.value, sender_id=sender_id)

        spoken = self._announcer.announce_letter(letter)
        self._bus.emit(Events.LETTER_ANNOUNCED, letter=letter.value, spoken=spoken)
        return letter

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def performance(self) -> PerformanceMonitor:
        return self._perf
