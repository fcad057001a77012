"""Observability: pipeline counters, timers and run summary logging."""

import threading
import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Dict-based metrics collector for counters and timers.

    Sweeps and immediate releases run on different threads, so updates
    go through a lock.
    """

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, value: int = 1):
        """Increment a counter by the given value."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Context manager to time an operation and store duration."""
        start = time.monotonic()
        try:
            yield
        finally:
            duration = time.monotonic() - start
            with self._lock:
                self._timers.setdefault(name, []).append(duration)

    def summary(self) -> dict[str, Any]:
        """Return a summary of all collected metrics."""
        with self._lock:
            counters = dict(self._counters)
            timers = {name: list(values) for name, values in self._timers.items()}

        timer_summary = {}
        for name, durations in timers.items():
            if durations:
                timer_summary[name] = {
                    "count": len(durations),
                    "total": sum(durations),
                    "avg": sum(durations) / len(durations),
                    "max": max(durations),
                }
            else:
                timer_summary[name] = {"count": 0}

        return {"counters": counters, "timers": timer_summary}

    def reset(self):
        """Clear all metrics."""
        with self._lock:
            self._counters.clear()
            self._timers.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary():
    """Log the current metrics summary via structlog."""
    summary = metrics.summary()
    logger.info("run_summary", **summary)
