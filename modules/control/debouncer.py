"""
Hold debouncer: a letter is confirmed only after it has been seen
continuously for a minimum duration.

Lifecycle (driven by SignRelaySession):
    process(letter, now)  - once per classified frame
    acknowledge()         - caller acted on the confirmation; stay quiet
                            until the letter changes
    reset()               - hand lost / no letter; back to idle

While a hold persists, ``process`` keeps returning the same letter on every
call. Callers that want one action per hold call ``acknowledge()`` after
acting; this does not touch the hold timer.
"""

import time
import logging
from typing import Callable, Optional

from core.types import Letter, DebounceState

logger = logging.getLogger(__name__)

DEFAULT_MIN_HOLD_MS = 1000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class HoldDebouncer:
    """Temporal filter over the per-frame letter stream.

    Timestamps are milliseconds. Not thread-safe; owned by one session.
    """

    def __init__(self, config: dict = None, clock: Callable[[], float] = None):
        config = config or {}
        self._min_hold_ms = config.get("min_hold_ms", DEFAULT_MIN_HOLD_MS)
        self._clock = clock or _monotonic_ms

        self._candidate: Optional[Letter] = None
        self._held_since: Optional[float] = None
        self._acknowledged = False

    def process(self, letter: Optional[Letter], now: float = None) -> Optional[Letter]:
        """Feed one classification; returns the confirmed letter or None.

        Any change of letter (including to or from None) restarts the hold.
        """
        if now is None:
            now = self._clock()

        if letter == self._candidate:
            if self._candidate is None or self._acknowledged:
                return None
            if now - self._held_since >= self._min_hold_ms:
                return self._candidate
            return None

        if letter is None:
            logger.debug("Hold cleared (was %s)", self._candidate)
            self._set_idle()
        else:
            logger.debug("Hold started: %s -> %s", self._candidate, letter)
            self._candidate = letter
            self._held_since = now
            self._acknowledged = False
        return None

    def acknowledge(self):
        """Suppress further confirmations of the current hold."""
        if self._candidate is not None:
            self._acknowledged = True

    def reset(self):
        """Force idle regardless of current state."""
        self._set_idle()

    def hold_progress(self, now: float = None) -> float:
        """Fraction (0.0 - 1.0) of the hold window elapsed for the candidate."""
        if self._candidate is None:
            return 0.0
        if now is None:
            now = self._clock()
        if self._min_hold_ms <= 0:
            return 1.0
        return max(0.0, min(1.0, (now - self._held_since) / self._min_hold_ms))

    def _set_idle(self):
        self._candidate = None
        self._held_since = None
        self._acknowledged = False

    @property
    def state(self) -> DebounceState:
        return DebounceState(candidate=self._candidate, held_since=self._held_since)

    @property
    def candidate(self) -> Optional[Letter]:
        return self._candidate

    @property
    def min_hold_ms(self) -> float:
        return self._min_hold_ms
