"""
Announcement throttle: rate-limits and sequences calls into a speech engine.

A call within ``throttle_ms`` of the last *finished* utterance is dropped
(not queued). Otherwise the utterance in flight is cancelled and the new
text is spoken. The throttle window starts when speech completes, so a
long utterance lengthens the silence before the next one.
"""

import time
import logging
import threading
from typing import Callable, Optional

from core.types import Letter
from modules.speech.engines import SpeechEngine, SpeechEngineError, SpeechOptions

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_MS = 1000
DEFAULT_TEMPLATE = "Letter {letter}"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class AnnouncementThrottle:
    """Speaks received letters through one engine, at a bounded rate.

    Completion callbacks may arrive on the engine's worker thread, so the
    throttle state is guarded by a lock.
    """

    def __init__(self, engine: SpeechEngine, config: dict = None,
                 clock: Callable[[], float] = None):
        config = config or {}
        self._engine = engine
        self._throttle_ms = config.get("throttle_ms", DEFAULT_THROTTLE_MS)
        self._template = config.get("template", DEFAULT_TEMPLATE)
        self._options = SpeechOptions.from_dict(config)
        self._clock = clock or _monotonic_ms

        self._lock = threading.Lock()
        self._last_spoken_at = float("-inf")
        self._utterance_id = 0
        self._in_flight: Optional[int] = None
        self._error_count = 0

    def announce(self, text: str) -> bool:
        """Speak ``text`` unless throttled.

        Returns:
            True if an utterance was started
        """
        with self._lock:
            now = self._clock()
            if now - self._last_spoken_at < self._throttle_ms:
                logger.debug("Announcement throttled: %r (%.0fms since last)",
                             text, now - self._last_spoken_at)
                return False
            self._utterance_id += 1
            utterance_id = self._utterance_id
            self._in_flight = utterance_id

        try:
            self._engine.cancel()
            self._engine.speak(
                text, self._options,
                lambda completed: self._on_done(utterance_id, completed),
            )
        except SpeechEngineError as e:
            with self._lock:
                self._error_count += 1
                if self._in_flight == utterance_id:
                    self._in_flight = None
            logger.error("Speech engine failed for %r: %s", text, e)
            return False

        logger.debug("Announcing: %r", text)
        return True

    def announce_letter(self, letter: Letter) -> bool:
        return self.announce(self._template.format(letter=letter.value))

    def stop(self):
        """Cancel the utterance in flight; the throttle window is kept."""
        with self._lock:
            self._in_flight = None
        try:
            self._engine.cancel()
        except SpeechEngineError as e:
            logger.error("Speech engine failed to cancel: %s", e)

    def _on_done(self, utterance_id: int, completed: bool):
        with self._lock:
            if self._in_flight != utterance_id:
                return  # superseded or stopped
            self._in_flight = None
            if completed:
                self._last_spoken_at = self._clock()

    @property
    def last_spoken_at(self) -> float:
        with self._lock:
            return self._last_spoken_at

    @property
    def is_speaking(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    @property
    def error_count(self) -> int:
        return self._error_count
