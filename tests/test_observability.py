"""Tests for metrics collection."""

import pytest

from observability import Metrics, log_run_summary


def test_counters():
    m = Metrics()
    m.counter("feedback.signals_sent")
    m.counter("feedback.signals_sent", 4)
    assert m.get("feedback.signals_sent") == 5
    assert m.get("never.counted") == 0


def test_timer_records_even_on_error():
    m = Metrics()
    with m.timer("feedback.process"):
        pass
    with pytest.raises(ValueError):
        with m.timer("feedback.process"):
            raise ValueError("boom")

    timers = m.summary()["timers"]
    assert timers["feedback.process"]["count"] == 2
    assert timers["feedback.process"]["max"] >= 0


def test_reset():
    m = Metrics()
    m.counter("degradation.entered")
    m.reset()
    assert m.summary() == {"counters": {}, "timers": {}}


def test_log_run_summary_returns_summary():
    m = Metrics()
    m.counter("offline.signals_synced", 2)
    assert log_run_summary(m)["counters"] == {"offline.signals_synced": 2}
