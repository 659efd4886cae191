"""
Tests for the Announcement Throttle
====================================
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import Letter
from modules.speech.announcer import AnnouncementThrottle, DEFAULT_THROTTLE_MS
from modules.speech.engines import SpeechEngine, SpeechEngineError, SpeechOptions


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakeEngine(SpeechEngine):
    """Records utterances; completes them at once unless ``manual`` is set."""

    def __init__(self, manual=False, fail=False):
        self.manual = manual
        self.fail = fail
        self.spoken = []
        self.pending = []
        self.cancel_calls = 0

    def speak(self, text, options, on_done):
        if self.fail:
            raise SpeechEngineError("no audio device")
        self.spoken.append((text, options))
        if self.manual:
            self.pending.append(on_done)
        else:
            on_done(True)

    def cancel(self):
        self.cancel_calls += 1
        pending, self.pending = self.pending, []
        for on_done in pending:
            on_done(False)

    def finish(self, completed=True):
        self.pending.pop(0)(completed)


@pytest.fixture
def clock():
    return FakeClock(10_000.0)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def throttle(engine, clock):
    return AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)


class TestThrottleWindow:

    def test_calls_200ms_apart_speak_once(self, throttle, engine, clock):
        assert throttle.announce("Letter A") is True
        clock.advance(200)
        assert throttle.announce("Letter B") is False
        assert [text for text, _ in engine.spoken] == ["Letter A"]

    def test_calls_1500ms_apart_speak_twice(self, throttle, engine, clock):
        throttle.announce("Letter A")
        clock.advance(1500)
        assert throttle.announce("Letter B") is True
        assert [text for text, _ in engine.spoken] == ["Letter A", "Letter B"]

    def test_exact_window_boundary_allowed(self, throttle, engine, clock):
        throttle.announce("Letter A")
        clock.advance(1000)
        assert throttle.announce("Letter B") is True

    def test_first_call_never_throttled(self, engine):
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=FakeClock(0.0))
        assert throttle.announce("Letter A") is True

    def test_dropped_call_not_queued(self, throttle, engine, clock):
        throttle.announce("Letter A")
        clock.advance(100)
        throttle.announce("Letter B")
        clock.advance(5000)
        assert len(engine.spoken) == 1

    def test_defaults(self, engine):
        throttle = AnnouncementThrottle(engine)
        assert DEFAULT_THROTTLE_MS == 1000
        throttle.announce_letter(Letter.V)
        text, options = engine.spoken[0]
        assert text == "Letter V"
        assert options == SpeechOptions(rate=0.9, pitch=1.0, volume=1.0)


class TestCompletionTiming:

    def test_window_measured_from_completion(self, clock):
        engine = FakeEngine(manual=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)

        throttle.announce("Letter A")
        assert throttle.is_speaking
        clock.advance(1500)
        engine.finish()
        assert throttle.last_spoken_at == clock.now

        clock.advance(500)
        assert throttle.announce("Letter B") is False
        clock.advance(500)
        assert throttle.announce("Letter B") is True

    def test_new_call_cancels_in_flight(self, clock):
        engine = FakeEngine(manual=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)

        throttle.announce("Letter A")
        # Still speaking, nothing finished yet: not throttled
        assert throttle.announce("Letter B") is True
        assert engine.cancel_calls == 2
        assert len(engine.pending) == 1
        assert throttle.last_spoken_at == float("-inf")

    def test_superseded_completion_ignored(self, clock):
        engine = FakeEngine(manual=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)
        throttle.announce("Letter A")
        stale_done = engine.pending[0]
        engine.pending.clear()
        throttle.announce("Letter B")

        stale_done(True)
        assert throttle.last_spoken_at == float("-inf")
        assert throttle.is_speaking

    def test_cancelled_utterance_does_not_start_window(self, clock):
        engine = FakeEngine(manual=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)
        throttle.announce("Letter A")
        engine.finish(completed=False)
        assert not throttle.is_speaking
        assert throttle.announce("Letter B") is True


class TestStop:

    def test_stop_cancels_and_keeps_window(self, throttle, engine, clock):
        throttle.announce("Letter A")
        spoken_at = throttle.last_spoken_at
        throttle.stop()
        assert engine.cancel_calls == 2
        assert throttle.last_spoken_at == spoken_at

        clock.advance(300)
        assert throttle.announce("Letter B") is False

    def test_stop_mid_utterance(self, clock):
        engine = FakeEngine(manual=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)
        throttle.announce("Letter A")
        throttle.stop()
        assert not throttle.is_speaking
        assert engine.pending == []


class TestEngineErrors:

    def test_error_reported_not_raised(self, clock):
        throttle = AnnouncementThrottle(FakeEngine(fail=True), {"throttle_ms": 1000}, clock=clock)
        assert throttle.announce("Letter A") is False
        assert throttle.error_count == 1
        assert not throttle.is_speaking

    def test_failure_does_not_start_window(self, clock):
        engine = FakeEngine(fail=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)
        throttle.announce("Letter A")
        engine.fail = False
        clock.advance(10)
        assert throttle.announce("Letter B") is True

    def test_throttle_keeps_working_after_error(self, clock):
        engine = FakeEngine(fail=True)
        throttle = AnnouncementThrottle(engine, {"throttle_ms": 1000}, clock=clock)
        throttle.announce("Letter A")
        engine.fail = False
        throttle.announce("Letter B")
        clock.advance(200)
        assert throttle.announce("Letter C") is False
        assert [text for text, _ in engine.spoken] == ["Letter B"]


class TestTemplate:

    def test_custom_template(self, engine, clock):
        throttle = AnnouncementThrottle(engine, {"template": "{letter}!"}, clock=clock)
        throttle.announce_letter(Letter.Y)
        assert engine.spoken[0][0] == "Y!"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
