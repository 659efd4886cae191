"""
Per-frame performance monitoring with per-stage latency tracking.
Thread-safe metrics collection with rolling windows.

The classify and debounce stages run inside the frame callback and are
expected to stay well under a millisecond; the report makes that visible.
"""

import time
import threading
import logging
from collections import deque
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Tracks FPS, dropped frames, and per-stage latency."""

    def __init__(self, window_size=100):
        self._window_size = window_size
        self._lock = threading.Lock()

        self._frame_times = deque(maxlen=window_size)
        self._last_frame_time = None

        self._stage_times = {}
        for name in ("pose", "classify", "debounce", "relay", "total"):
            self._stage_times[name] = deque(maxlen=window_size)

        self._frame_count = 0
        self._dropped_frames = 0
        self._start_time = time.time()

    @contextmanager
    def measure(self, stage_name: str):
        """Context manager to measure a pipeline stage's duration."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                if stage_name not in self._stage_times:
                    self._stage_times[stage_name] = deque(maxlen=self._window_size)
                self._stage_times[stage_name].append(elapsed_ms)

    def tick(self):
        """Call once per processed frame to track FPS."""
        now = time.perf_counter()
        with self._lock:
            if self._last_frame_time is not None:
                self._frame_times.append(now - self._last_frame_time)
            self._last_frame_time = now
            self._frame_count += 1

    def record_drop(self):
        """Record a frame dropped because the previous one was still in progress."""
        with self._lock:
            self._dropped_frames += 1

    @property
    def fps(self) -> float:
        """Current frames per second (rolling average)."""
        with self._lock:
            if len(self._frame_times) < 2:
                return 0.0
            avg_interval = sum(self._frame_times) / len(self._frame_times)
            return 1.0 / avg_interval if avg_interval > 0 else 0.0

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    def get_stage_latency(self, stage_name: str) -> float:
        """Average latency for a specific stage in ms."""
        with self._lock:
            times = self._stage_times.get(stage_name, [])
            if not times:
                return 0.0
            return sum(times) / len(times)

    def get_stage_peak(self, stage_name: str) -> float:
        """Worst latency for a stage within the window, in ms."""
        with self._lock:
            times = self._stage_times.get(stage_name, [])
            return max(times) if times else 0.0

    def get_all_latencies(self) -> dict:
        """Average latency for all stages."""
        with self._lock:
            return {
                name: (sum(times) / len(times) if times else 0.0)
                for name, times in self._stage_times.items()
            }

    def get_report(self) -> dict:
        uptime = time.time() - self._start_time
        latencies = self.get_all_latencies()
        return {
            "fps": round(self.fps, 1),
            "total_frames": self._frame_count,
            "dropped_frames": self._dropped_frames,
            "drop_rate": round(
                self._dropped_frames / max(self._frame_count + self._dropped_frames, 1) * 100, 2
            ),
            "uptime_seconds": round(uptime, 1),
            "latencies_ms": {k: round(v, 3) for k, v in latencies.items()},
            "peak_ms": {k: round(self.get_stage_peak(k), 3) for k in latencies},
        }

    def print_report(self):
        """Log a formatted performance report."""
        report = self.get_report()
        logger.info("=" * 60)
        logger.info("PERFORMANCE REPORT")
        logger.info("=" * 60)
        logger.info("FPS:            %.1f", report["fps"])
        logger.info("Total Frames:   %d", report["total_frames"])
        logger.info("Dropped Frames: %d (%.2f%%)", report["dropped_frames"], report["drop_rate"])
        logger.info("Uptime:         %.1fs", report["uptime_seconds"])
        logger.info("-" * 40)
        logger.info("Stage Latencies (avg / peak ms):")
        for stage, latency in report["latencies_ms"].items():
            logger.info("  %-10s %7.3f / %7.3f", stage, latency, report["peak_ms"][stage])
        logger.info("=" * 60)

    def reset(self):
        with self._lock:
            self._frame_times.clear()
            self._last_frame_time = None
            for name in self._stage_times:
                self._stage_times[name].clear()
            self._frame_count = 0
            self._dropped_frames = 0
            self._start_time = time.time()
