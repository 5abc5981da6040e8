"""
Fixed-capacity ring buffer computing a trailing average of power samples.

The capacity is derived from the sampling interval so that a full buffer
spans the averaging window (15 minutes by default).  Writes advance a cursor
modulo the capacity and silently overwrite the oldest slot; empty slots are
excluded from the average.

CHANGELOG:
- 2026-10-19: Clamp capacity to a minimum of one slot (STORY-005)
- 2026-10-19: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

WINDOW_MS: int = 15 * 60 * 1000
"""Length of the averaging window in milliseconds."""


def capacity_for(sample_interval_ms: float, window_ms: float = WINDOW_MS) -> int:
    """Return the number of slots needed to cover *window_ms*.

    ``floor(window_ms / sample_interval_ms)``, clamped to at least 1 so that
    an interval longer than the window still keeps the latest sample.

    Raises:
        ValueError: If *sample_interval_ms* is not strictly positive.
    """
    if sample_interval_ms <= 0:
        raise ValueError(f"sample interval must be > 0 ms (got {sample_interval_ms})")
    return max(int(window_ms // sample_interval_ms), 1)


class RollingAverageBuffer:
    """Circular buffer of the most recent samples.

    Args:
        capacity: Number of slots; must be >= 1.
    """

    __slots__ = ("_capacity", "_slots", "_cursor")

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1 (got {capacity})")
        self._capacity = capacity
        self._slots: list[float | None] = [None] * capacity
        self._cursor = 0

    @classmethod
    def from_interval(
        cls,
        sample_interval_ms: float,
        window_ms: float = WINDOW_MS,
    ) -> RollingAverageBuffer:
        """Build a buffer sized for *window_ms* at the given sample interval."""
        return cls(capacity_for(sample_interval_ms, window_ms))

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def cursor(self) -> int:
        """Index of the slot the next :meth:`store` writes to."""
        return self._cursor

    @property
    def slots(self) -> list[float | None]:
        """Copy of the raw slots in physical order (``None`` = empty)."""
        return list(self._slots)

    def __len__(self) -> int:
        return sum(1 for v in self._slots if v is not None)

    def store(self, value: float) -> None:
        """Write *value* at the cursor and advance it, wrapping at capacity."""
        self._slots[self._cursor] = value
        self._cursor = (self._cursor + 1) % self._capacity

    def average(self) -> float:
        """Mean of the occupied slots, or ``0`` when nothing is stored yet."""
        readings = [v for v in self._slots if v is not None]
        if not readings:
            return 0.0
        return sum(readings) / len(readings)

    def clear(self) -> None:
        self._slots = [None] * self._capacity
        self._cursor = 0
