"""
Unit tests for RRWindow and RRAccumulator.
Run with:  pytest tests/test_rr_accumulator.py
"""

from __future__ import annotations

import pytest

from cardio_monitor.config import PipelineConfig
from cardio_monitor.rr_accumulator import RRAccumulator, RRWindow


def _feed(acc: RRAccumulator, timestamps) -> list:
    return [acc.add_beat(ts) for ts in timestamps]


class TestRRWindow:

    def test_evicts_oldest_when_full(self):
        win = RRWindow(capacity=3)
        for v in (1.0, 2.0, 3.0, 4.0):
            win.append(v)
        assert len(win) == 3
        assert win.snapshot() == (2.0, 3.0, 4.0)
        assert win.is_full

    def test_snapshot_is_a_copy(self):
        win = RRWindow(capacity=5)
        win.append(800.0)
        snap = win.snapshot()
        win.append(900.0)
        assert snap == (800.0,)

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            RRWindow(capacity=0)

    def test_clear(self):
        win = RRWindow()
        win.append(700.0)
        win.clear()
        assert len(win) == 0
        assert win.as_array().size == 0


class TestRRAccumulator:

    def test_first_beat_has_no_interval(self):
        acc = RRAccumulator()
        assert acc.add_beat(1000.0) is None
        assert len(acc) == 0
        assert acc.last_beat_ms == 1000.0

    def test_valid_intervals_accepted(self):
        acc = RRAccumulator()
        out = _feed(acc, [0.0, 800.0, 1650.0])
        assert out == [None, 800.0, 850.0]
        assert acc.window.snapshot() == (800.0, 850.0)

    def test_too_short_interval_discarded(self):
        acc = RRAccumulator()
        _feed(acc, [0.0, 800.0])
        assert acc.add_beat(950.0) is None        # 150 ms
        assert len(acc) == 1
        assert acc.rejected == 1

    def test_too_long_interval_discarded(self):
        acc = RRAccumulator()
        _feed(acc, [0.0, 800.0])
        assert acc.add_beat(3300.0) is None       # 2500 ms
        assert len(acc) == 1

    def test_bounds_are_inclusive(self):
        acc = RRAccumulator()
        assert _feed(acc, [0.0, 300.0, 2300.0]) == [None, 300.0, 2000.0]

    def test_rejected_beat_becomes_reference(self):
        acc = RRAccumulator()
        _feed(acc, [0.0, 2500.0])                 # rejected, but reference advances
        assert acc.last_beat_ms == 2500.0
        assert acc.add_beat(3300.0) == 800.0

    def test_rejected_beat_kept_out_when_not_advancing(self):
        acc = RRAccumulator(PipelineConfig(rr_advance_on_reject=False))
        _feed(acc, [0.0, 800.0, 950.0])
        assert acc.last_beat_ms == 800.0
        assert acc.add_beat(1600.0) == 800.0

    def test_capacity_limits_window(self):
        acc = RRAccumulator(PipelineConfig(rr_capacity=60))
        _feed(acc, [i * 1000.0 for i in range(100)])
        assert len(acc) == 60

    def test_out_of_order_beat_ignored(self):
        acc = RRAccumulator()
        _feed(acc, [1000.0, 1800.0])
        assert acc.add_beat(1500.0) is None
        assert acc.last_beat_ms == 1800.0

    def test_skip_beat_moves_reference(self):
        acc = RRAccumulator()
        acc.add_beat(0.0)
        acc.skip_beat(700.0)
        assert acc.add_beat(1500.0) == 800.0
        assert acc.window.snapshot() == (800.0,)

    def test_reset(self):
        acc = RRAccumulator()
        _feed(acc, [0.0, 900.0, 1800.0])
        acc.reset()
        assert len(acc) == 0
        assert acc.last_beat_ms is None
