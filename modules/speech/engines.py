"""
Speech engine adapters.

An engine accepts one utterance at a time, reports completion through a
callback, and supports cancelling the utterance in flight. Speaking never
blocks the caller: pyttsx3's blocking ``runAndWait`` runs on a worker thread.
"""

import queue
import logging
import threading
from dataclasses import dataclass
from typing import Callable

import pyttsx3

logger = logging.getLogger(__name__)

DoneCallback = Callable[[bool], None]  # completed (False if cancelled/failed)


class SpeechEngineError(Exception):
    """The speech engine is unavailable or rejected an utterance."""


@dataclass(frozen=True)
class SpeechOptions:
    rate: float = 0.9     # multiplier of the engine's base speed
    pitch: float = 1.0    # ignored by pyttsx3 (no pitch control)
    volume: float = 1.0   # 0.0 - 1.0

    @classmethod
    def from_dict(cls, config: dict) -> 'SpeechOptions':
        return cls(
            rate=config.get("rate", 0.9),
            pitch=config.get("pitch", 1.0),
            volume=config.get("volume", 1.0),
        )


class SpeechEngine:
    def speak(self, text: str, options: SpeechOptions, on_done: DoneCallback):
        raise NotImplementedError

    def cancel(self):
        raise NotImplementedError

    def close(self):
        pass


class LogSpeechEngine(SpeechEngine):
    """Logs utterances instead of voicing them; completes immediately."""

    def __init__(self):
        self.spoken = []

    def speak(self, text: str, options: SpeechOptions, on_done: DoneCallback):
        self.spoken.append(text)
        logger.info("Speech: %s", text)
        on_done(True)

    def cancel(self):
        pass


class Pyttsx3Engine(SpeechEngine):
    """pyttsx3 on a dedicated worker thread.

    The pyttsx3 driver is created inside the worker (it must live on the
    thread that calls ``runAndWait``). ``cancel`` drops queued utterances
    and stops the one being spoken.
    """

    _STOP = object()

    def __init__(self, config: dict = None):
        config = config or {}
        self._base_wpm = config.get("base_wpm", 200)
        self._voice_id = config.get("voice_id")
        self._queue = queue.Queue()
        self._engine = None
        self._ready = threading.Event()
        self._init_error = None
        self._current_done = None
        self._cancelled = False
        self._generation = 0  # bumped by cancel(); older queue items are stale
        self._lock = threading.Lock()

        self._thread = threading.Thread(target=self._worker, name="pyttsx3", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=config.get("init_timeout_s", 5))

        if self._init_error is not None:
            raise SpeechEngineError("pyttsx3 unavailable: %s" % self._init_error)
        logger.info("Speech engine ready (pyttsx3, base %d wpm)", self._base_wpm)

    def _worker(self):
        try:
            self._engine = pyttsx3.init()
            if self._voice_id:
                self._engine.setProperty("voice", self._voice_id)
        except Exception as e:
            self._init_error = e
            self._ready.set()
            return
        self._ready.set()

        while True:
            item = self._queue.get()
            if item is self._STOP:
                break
            generation, text, options, on_done = item
            with self._lock:
                stale = generation != self._generation
                if not stale:
                    self._current_done = on_done
                    self._cancelled = False
            if stale:
                on_done(False)
                continue
            completed = False
            try:
                self._engine.setProperty("rate", int(self._base_wpm * options.rate))
                self._engine.setProperty("volume", max(0.0, min(1.0, options.volume)))
                with self._lock:
                    cancelled = self._cancelled
                if not cancelled:
                    self._engine.say(text)
                    self._engine.runAndWait()
                    completed = True
            except Exception as e:
                logger.error("Speech synthesis error: %s", e)
            with self._lock:
                completed = completed and not self._cancelled
                self._current_done = None
            on_done(completed)

    def speak(self, text: str, options: SpeechOptions, on_done: DoneCallback):
        if not self._thread.is_alive() or self._engine is None:
            raise SpeechEngineError("speech worker is not running")
        with self._lock:
            generation = self._generation
        self._queue.put((generation, text, options, on_done))

    def cancel(self):
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is self._STOP:
                self._queue.put(item)
                break
            dropped += 1
            item[3](False)
        with self._lock:
            self._generation += 1
            speaking = self._current_done is not None
            self._cancelled = speaking
        if speaking and self._engine is not None:
            self._engine.stop()
        if dropped or speaking:
            logger.debug("Speech cancelled (queued dropped=%d, in-flight=%s)", dropped, speaking)

    def close(self):
        self.cancel()
        self._queue.put(self._STOP)
        self._thread.join(timeout=2.0)


def create_engine(config: dict) -> SpeechEngine:
    """Build the engine named by ``speech.backend``; falls back to logging."""
    backend = config.get("backend", "pyttsx3")
    if backend == "log":
        return LogSpeechEngine()
    if backend == "pyttsx3":
        try:
            return Pyttsx3Engine(config)
        except SpeechEngineError as e:
            logger.warning("%s - speech will be logged only", e)
            return LogSpeechEngine()
    raise ValueError("unknown speech backend: %s" % backend)
