"""
PM180 meter: register reads, snapshot assembly and rolling power average.

One :class:`PowerMeter` instance owns one transport client and one
:class:`~pm180.src.buffer.RollingAverageBuffer`.  A poll cycle reads the
profile's register ranges in order (bounded by a per-device timeout),
decodes the concatenated payload, feeds the decoded real import power into
the rolling buffer and assembles an immutable :class:`Snapshot`.

The meter never retries: read and decode errors propagate to the caller,
which owns the retry policy.

CHANGELOG:
- 2026-10-19: Map socket errors raised by the client to TransportError (STORY-006)
- 2026-10-19: Split snapshot assembly into a free function (STORY-006)
- 2026-10-19: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from pm180.src.buffer import RollingAverageBuffer
from pm180.src.decoder import decode_instantaneous
from pm180.src.errors import NoClient, TransportError
from pm180.src.models import (
    HistoricalValues,
    InstantaneousValues,
    PowermeterSpecific,
    Snapshot,
    SnapStats,
)
from pm180.src.registers import PM180_PROFILE, DeviceProfile

logger = logging.getLogger(__name__)

DEFAULT_COLLECT_SNAPS_ITV_MS: int = 60_000
"""Default sampling interval used to size the rolling buffer."""


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class RegisterClient(Protocol):
    """Anything that can read a contiguous run of holding registers."""

    async def read(self, address: int, count: int) -> bytes:
        """Return ``count * 2`` big-endian bytes starting at *address*."""
        ...

    def close(self) -> None: ...


ClientFactory = Callable[..., RegisterClient]
"""Called with ``host``, ``port``, ``unit_id`` and ``timeout_s`` keywords."""

TensionFn = Callable[[float, float, float], float]


def average_line_voltage(v12: float, v23: float, v31: float) -> float:
    """Default tension: arithmetic mean of the three line voltages."""
    return (v12 + v23 + v31) / 3


# ---------------------------------------------------------------------------
# Snapshot assembly
# ---------------------------------------------------------------------------


def assemble_snapshot(
    values: InstantaneousValues,
    buffer: RollingAverageBuffer,
    *,
    calculate_tension: TensionFn = average_line_voltage,
    ts: datetime | None = None,
) -> Snapshot:
    """Store the current power in *buffer* and build the snapshot.

    Args:
        values: Freshly decoded instantaneous values.
        buffer: The meter's rolling buffer; receives
            ``values.real_import_power_w``.
        calculate_tension: Pure function deriving the line voltage from the
            three phase-to-phase voltages.
        ts: Timestamp to embed in the snapshot.

    Returns:
        An immutable :class:`Snapshot`.
    """
    buffer.store(values.real_import_power_w)

    tension = calculate_tension(
        values.voltage_v1_v12_v,
        values.voltage_v2_v23_v,
        values.voltage_v3_v31_v,
    )

    return Snapshot(
        ts=ts,
        stats=SnapStats(
            power_w=values.real_import_power_w,
            tension_v=tension,
            powermeter_specific=PowermeterSpecific(
                instantaneous_values=values,
                historical_values=HistoricalValues(
                    real_import_power_w_last15m_avg=buffer.average(),
                ),
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Meter
# ---------------------------------------------------------------------------


class PowerMeter:
    """A single PM180 meter reached through a register client.

    Args:
        get_client: Factory returning the register client for this meter.
        host: Meter IP address or hostname.
        port: Modbus TCP port.
        unit_id: Modbus unit ID.
        timeout_ms: Upper bound for one complete register read (all ranges).
        collect_snaps_itv_ms: Sampling interval, used to size the rolling
            buffer so it spans 15 minutes.
        profile: Register layout of the meter type.
        calculate_tension: Line-voltage derivation.

    Raises:
        NoClient: If *get_client* is None.
    """

    def __init__(
        self,
        *,
        get_client: ClientFactory | None = None,
        host: str = "",
        port: int = 502,
        unit_id: int = 0,
        timeout_ms: float,
        collect_snaps_itv_ms: float = DEFAULT_COLLECT_SNAPS_ITV_MS,
        profile: DeviceProfile = PM180_PROFILE,
        calculate_tension: TensionFn = average_line_voltage,
    ) -> None:
        if get_client is None:
            raise NoClient("a client factory is required")
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0 (got {timeout_ms})")
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout_ms = timeout_ms
        self.collect_snaps_itv_ms = collect_snaps_itv_ms
        self.profile = profile
        self.client = get_client(
            host=host,
            port=port,
            unit_id=unit_id,
            timeout_s=timeout_ms / 1000.0,
        )
        self.buffer = RollingAverageBuffer.from_interval(collect_snaps_itv_ms)
        self.cache: bytes | None = None
        self._calculate_tension = calculate_tension

    def close(self) -> None:
        self.client.close()

    async def read_values(self) -> bytes:
        """Read every register range in order and cache the concatenation.

        Raises:
            TransportError: If any read fails or the whole sequence exceeds
                ``timeout_ms``.
        """
        try:
            chunks = await asyncio.wait_for(
                self._read_ranges(),
                timeout=self.timeout_ms / 1000.0,
            )
        except TimeoutError as exc:
            raise TransportError(
                f"read from {self.host}:{self.port} timed out after {self.timeout_ms} ms"
            ) from exc
        except OSError as exc:
            raise TransportError(f"read from {self.host}:{self.port} failed: {exc!r}") from exc

        self.cache = b"".join(chunks)
        return self.cache

    async def _read_ranges(self) -> list[bytes]:
        chunks: list[bytes] = []
        for address, count in self.profile.read_ranges:
            chunks.append(await self.client.read(address, count))
        return chunks

    async def prep_snap(
        self,
        read_from_cache: bool = False,
        *,
        ts: datetime | None = None,
    ) -> Snapshot:
        """Produce one snapshot, from a fresh read or from the cached block.

        Args:
            read_from_cache: Decode the last block read instead of reading.
            ts: Snapshot timestamp; defaults to now (UTC).
        """
        data = self.cache if read_from_cache else await self.read_values()
        values = decode_instantaneous(data, self.profile)
        snap = assemble_snapshot(
            values,
            self.buffer,
            calculate_tension=self._calculate_tension,
            ts=ts if ts is not None else datetime.now(tz=UTC),
        )
        logger.debug(
            "Snapshot %s:%d power_w=%.1f avg15m=%.1f",
            self.host,
            self.port,
            snap.stats.power_w,
            snap.historical_average,
        )
        return snap

    async def get_snap(self) -> Snapshot:
        """Fresh-read snapshot; the entry point used by the fleet runner."""
        return await self.prep_snap()
