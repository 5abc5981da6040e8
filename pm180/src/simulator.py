"""
In-process PM180 register-block simulator for tests and local runs.

Serves the meter's three holding-register windows (257-262, 272-278,
296-301) from per-instance byte buffers seeded with realistic defaults, so
that decoded output is verifiable against known values.  The simulator
implements the same ``read(address, count)`` interface as
:class:`~pm180.src.transport.ModbusTransport`, so it can be handed to a
:class:`~pm180.src.powermeter.PowerMeter` through its client factory.

Every instance owns its buffers: writes to one simulator never leak into
another, and :meth:`RegisterBlockSimulator.reset` restores the seeded
defaults.

CHANGELOG:
- 2026-10-19: Scope register buffers to the simulator instance (STORY-009)
- 2026-10-19: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from pm180.src.errors import AddressInvalid
from pm180.src.registers import ALL_GROUPS, RegisterGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SeedValue:
    """Default raw value of a simulated register."""

    value: int
    signed: bool
    name: str


DEFAULT_SEEDS: Mapping[int, SeedValue] = {
    257: SeedValue(6888, True, "voltage_v1_v12_v"),
    258: SeedValue(6890, True, "voltage_v2_v23_v"),
    259: SeedValue(6853, True, "voltage_v3_v31_v"),
    260: SeedValue(3457, True, "current_i1_a"),
    261: SeedValue(3524, True, "current_i2_a"),
    262: SeedValue(3469, True, "current_i3_a"),
    272: SeedValue(9989, True, "power_factor_l1"),
    273: SeedValue(9989, True, "power_factor_l2"),
    274: SeedValue(9984, True, "power_factor_l3"),
    276: SeedValue(6034, True, "real_import_power_kw"),
    277: SeedValue(6036, False, "reactive_power_k_var"),
    278: SeedValue(1160, True, "apparent_import_power_kva"),
    296: SeedValue(17, False, "voltage_1_2_thd"),
    297: SeedValue(19, False, "voltage_2_3_thd"),
    298: SeedValue(16, False, "voltage_3_1_thd"),
    299: SeedValue(30, False, "current_i1_thd"),
    300: SeedValue(39, False, "current_i2_thd"),
    301: SeedValue(38, False, "current_i3_thd"),
}
"""Seeded raw values keyed by register address."""

RequestHook = Callable[[int, int], None]
ResponseHook = Callable[[bytes], None]


class RegisterBlockSimulator:
    """Serves PM180 register windows from per-instance buffers.

    Args:
        seeds: Raw defaults keyed by address (default :data:`DEFAULT_SEEDS`).
        windows: Register groups to serve (default: the PM180 groups).
        on_request: Optional hook called with ``(address, quantity)`` for
            every read.
        on_response: Optional hook called with the bytes of every
            successful read.
    """

    def __init__(
        self,
        seeds: Mapping[int, SeedValue] = DEFAULT_SEEDS,
        windows: list[RegisterGroup] | None = None,
        *,
        on_request: RequestHook | None = None,
        on_response: ResponseHook | None = None,
    ) -> None:
        self._windows = list(windows if windows is not None else ALL_GROUPS)
        self._seeds = dict(seeds)
        self._buffers: dict[str, bytearray] = {}
        self._on_request = on_request
        self._on_response = on_response
        self.closed = False
        self.reads = 0
        self.reset()

    # -- lifecycle --

    def reset(self) -> None:
        """Restore every window to the seeded defaults."""
        self._buffers = {w.group_name: bytearray(w.count * 2) for w in self._windows}
        for address, seed in self._seeds.items():
            self.write_register(address, seed.value, signed=seed.signed)
        logger.debug("Simulator reset: %d registers seeded", len(self._seeds))

    def close(self) -> None:
        self.closed = True

    # -- register access --

    def _window_for(self, address: int, quantity: int) -> RegisterGroup:
        for window in self._windows:
            if window.contains(address, quantity):
                return window
        raise AddressInvalid(f"address={address}, quantity={quantity}")

    def read_registers(self, address: int, quantity: int) -> bytes:
        """Return ``quantity * 2`` bytes starting at register *address*.

        Raises:
            AddressInvalid: If the range is not fully inside one window.
        """
        if self._on_request is not None:
            self._on_request(address, quantity)
        window = self._window_for(address, quantity)
        start = (address - window.start_address) * 2
        data = bytes(self._buffers[window.group_name][start : start + quantity * 2])
        self.reads += 1
        if self._on_response is not None:
            self._on_response(data)
        return data

    def write_register(self, address: int, value: int, *, signed: bool = False) -> None:
        """Store *value* as a big-endian 16-bit word at *address*.

        Raises:
            AddressInvalid: If *address* is not inside a served window.
            OverflowError: If *value* does not fit the requested signedness.
        """
        window = self._window_for(address, 1)
        start = (address - window.start_address) * 2
        self._buffers[window.group_name][start : start + 2] = value.to_bytes(
            2, "big", signed=signed
        )

    # -- transport interface --

    async def read(self, address: int, count: int) -> bytes:
        return self.read_registers(address, count)

    def client_factory(self, **_: object) -> RegisterBlockSimulator:
        """Client factory handing out this simulator, for :class:`PowerMeter`."""
        return self
