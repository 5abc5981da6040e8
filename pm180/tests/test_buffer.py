"""
Tests for the rolling average buffer.

CHANGELOG:
- 2026-10-19: Initial creation -- TDD tests written first (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import pytest
from pm180.src.buffer import WINDOW_MS, RollingAverageBuffer, capacity_for


class TestCapacity:
    def test_one_minute_interval_gives_15_slots(self) -> None:
        assert capacity_for(60_000) == 15

    def test_capacity_floors(self) -> None:
        assert capacity_for(7_000) == 128  # 900000 / 7000 = 128.57

    def test_interval_longer_than_window_clamps_to_one(self) -> None:
        assert capacity_for(WINDOW_MS * 2) == 1

    @pytest.mark.parametrize("interval", [0, -1])
    def test_non_positive_interval_rejected(self, interval: int) -> None:
        with pytest.raises(ValueError, match="sample interval"):
            capacity_for(interval)

    def test_zero_capacity_rejected(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            RollingAverageBuffer(0)

    def test_from_interval(self) -> None:
        buf = RollingAverageBuffer.from_interval(60_000)
        assert buf.capacity == 15
        assert buf.slots == [None] * 15
        assert buf.cursor == 0


class TestStore:
    def test_store_advances_cursor(self) -> None:
        buf = RollingAverageBuffer(15)
        buf.store(1000)
        assert buf.slots[0] == 1000
        assert buf.cursor == 1
        buf.store(2000)
        assert buf.slots[1] == 2000
        assert buf.cursor == 2

    def test_filling_capacity_wraps_cursor(self) -> None:
        buf = RollingAverageBuffer(4)
        for i in range(4):
            buf.store(i * 100)
        assert buf.cursor == 0
        assert len(buf) == 4
        assert None not in buf.slots

    def test_overflow_overwrites_slot_zero(self) -> None:
        buf = RollingAverageBuffer(4)
        for i in range(4):
            buf.store(i * 100)
        buf.store(9999)
        assert buf.slots == [9999, 100, 200, 300]
        assert buf.cursor == 1

    def test_capacity_one_keeps_latest(self) -> None:
        buf = RollingAverageBuffer(1)
        buf.store(1)
        buf.store(2)
        assert buf.slots == [2]
        assert buf.average() == 2


class TestAverage:
    def test_empty_buffer_averages_to_zero(self) -> None:
        assert RollingAverageBuffer(15).average() == 0

    def test_average_of_three(self) -> None:
        buf = RollingAverageBuffer(15)
        for v in (1000, 2000, 3000):
            buf.store(v)
        assert buf.average() == 2000

    def test_empty_slots_are_excluded(self) -> None:
        buf = RollingAverageBuffer(15)
        buf.store(1000)
        buf.store(2000)
        assert buf.average() == 1500

    def test_zero_readings_are_counted(self) -> None:
        buf = RollingAverageBuffer(15)
        buf.store(0)
        buf.store(3000)
        assert buf.average() == 1500

    def test_average_after_wrap_uses_latest_window(self) -> None:
        buf = RollingAverageBuffer(2)
        for v in (100, 200, 300):
            buf.store(v)
        assert buf.average() == 250

    def test_clear(self) -> None:
        buf = RollingAverageBuffer(3)
        buf.store(5)
        buf.clear()
        assert buf.average() == 0
        assert buf.cursor == 0
        assert len(buf) == 0
