"""
Logging setup plus a relay event logger with bounded history.
"""

import os
import logging
import logging.handlers
import time
from functools import wraps

from core.events import EventBus, Events


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure the root logger: compact console, optional rotating file."""
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-30s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class RelayLogger:
    """Logs what happens to letters on both sides of the relay.

    Subscribe it to a session's EventBus with ``attach``.
    """

    def __init__(self, max_history: int = 500):
        self.logger = logging.getLogger("relay_events")
        self._history = []
        self._max_history = max_history

    def attach(self, bus: EventBus):
        bus.subscribe(Events.LETTER_CONFIRMED, self._on_confirmed)
        bus.subscribe(Events.LETTER_SENT, self._on_sent)
        bus.subscribe(Events.SEND_FAILED, self._on_send_failed)
        bus.subscribe(Events.MESSAGE_RECEIVED, self._on_received)
        bus.subscribe(Events.MESSAGE_DROPPED, self._on_dropped)
        bus.subscribe(Events.LETTER_ANNOUNCED, self._on_announced)

    def _record(self, kind: str, letter=None, **extra):
        entry = {"timestamp": time.time(), "event": kind, "letter": letter}
        entry.update(extra)
        self._history.append(entry)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

    def _on_confirmed(self, letter, **kwargs):
        self._record("confirmed", letter)

    def _on_sent(self, letter, **kwargs):
        self._record("sent", letter)
        self.logger.info("Sent:      %s", letter)

    def _on_send_failed(self, letter, **kwargs):
        self._record("send_failed", letter)
        self.logger.warning("Not sent:  %s (channel unavailable)", letter)

    def _on_received(self, letter, sender_id="", **kwargs):
        self._record("received", letter, sender_id=sender_id)
        self.logger.info("Received:  %s (from %s)", letter, sender_id)

    def _on_dropped(self, payload=None, sender_id="", **kwargs):
        self._record("dropped", None, payload=payload, sender_id=sender_id)

    def _on_announced(self, letter, spoken=True, **kwargs):
        self._record("announced" if spoken else "throttled", letter)
        if spoken:
            self.logger.info("Announced: %s", letter)

    def get_history(self, last_n=None):
        if last_n:
            return self._history[-last_n:]
        return self._history.copy()

    @property
    def total_sent(self) -> int:
        return sum(1 for e in self._history if e["event"] == "sent")


def log_timing(func):
    """Decorator to log function execution time at DEBUG."""
    logger = logging.getLogger(func.__module__)

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("%s took %.2fms", func.__name__, elapsed)
        return result

    return wrapper
