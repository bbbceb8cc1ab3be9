"""Metrics for the feedback loop: counters, timers and a run summary.

Counter names used across the package:
    feedback.signals_sent      signals delivered straight to the memory service
    feedback.signals_queued    signals written to the offline queue
    offline.signals_synced     queued signals delivered during recovery
    offline.memories_synced    offline memories retained during recovery
    degradation.entered
    degradation.recovered

Timers:
    feedback.process           one detection + scoring pass
"""

import time
from contextlib import contextmanager
from typing import Any, Optional

import structlog

logger = structlog.get_logger()


class Metrics:
    """In-process counters and timers."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Time the wrapped block; the duration is kept even if it raises."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.monotonic() - start)

    def summary(self) -> dict[str, Any]:
        timers = {
            name: {
                "count": len(durations),
                "total": sum(durations),
                "avg": sum(durations) / len(durations),
                "max": max(durations),
            }
            for name, durations in self._timers.items()
            if durations
        }
        return {"counters": dict(self._counters), "timers": timers}

    def reset(self):
        self._counters.clear()
        self._timers.clear()


# Module-level singleton
metrics = Metrics()


def log_run_summary(collector: Optional[Metrics] = None) -> dict[str, Any]:
    """Log and return the metrics summary."""
    summary = (collector or metrics).summary()
    logger.info("run_summary", **summary)
    return summary
