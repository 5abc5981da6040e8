"""
Tests for the PM180 meter and snapshot assembly.

Verifies construction guards, ordered range reads with caching, the read
timeout, snapshot structure, rolling average feeding and error propagation.
Reads are served by the in-process simulator or by AsyncMock clients.

CHANGELOG:
- 2026-10-19: Initial creation -- TDD tests written first (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from pm180.src.buffer import RollingAverageBuffer
from pm180.src.constants import ENG_LO, POWER_MULTIPLIER, VOLTAGE_MULTIPLIER
from pm180.src.decoder import decode_instantaneous
from pm180.src.errors import DataInsufficient, DataInvalid, NoClient, TransportError
from pm180.src.models import Snapshot
from pm180.src.powermeter import (
    PowerMeter,
    assemble_snapshot,
    average_line_voltage,
)
from pm180.src.simulator import RegisterBlockSimulator

_TS = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)


def _make_meter(client: object, **overrides: object) -> PowerMeter:
    opts: dict[str, object] = {
        "get_client": lambda **_: client,
        "host": "192.168.1.50",
        "port": 502,
        "unit_id": 1,
        "timeout_ms": 5000,
        "collect_snaps_itv_ms": 60000,
    }
    opts.update(overrides)
    return PowerMeter(**opts)  # type: ignore[arg-type]


def _make_mock_client(chunks: list[bytes] | None = None) -> MagicMock:
    """Client whose read() returns zero-filled bytes sized to the request."""
    client = MagicMock()
    client.close = MagicMock()
    if chunks is None:
        client.read = AsyncMock(side_effect=lambda address, count: bytes(count * 2))
    else:
        client.read = AsyncMock(side_effect=chunks)
    return client


class TestConstruction:
    def test_missing_client_factory_raises_no_client(self) -> None:
        with pytest.raises(NoClient, match="ERR_NO_CLIENT"):
            PowerMeter(timeout_ms=5000)

    def test_factory_receives_connection_options(self) -> None:
        factory = MagicMock(return_value=_make_mock_client())
        PowerMeter(
            get_client=factory,
            host="10.0.0.7",
            port=1502,
            unit_id=3,
            timeout_ms=2500,
        )
        factory.assert_called_once_with(host="10.0.0.7", port=1502, unit_id=3, timeout_s=2.5)

    def test_buffer_sized_for_15_minutes(self) -> None:
        meter = _make_meter(_make_mock_client(), collect_snaps_itv_ms=60000)
        assert meter.buffer.capacity == 15
        assert meter.buffer.cursor == 0

    def test_buffer_capacity_clamped_for_long_interval(self) -> None:
        meter = _make_meter(_make_mock_client(), collect_snaps_itv_ms=3_600_000)
        assert meter.buffer.capacity == 1

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValueError, match="timeout_ms"):
            _make_meter(_make_mock_client(), timeout_ms=0)

    def test_close_closes_client(self) -> None:
        client = _make_mock_client()
        meter = _make_meter(client)
        meter.close()
        client.close.assert_called_once()


class TestReadValues:
    @pytest.mark.asyncio
    async def test_reads_three_ranges_in_order(self) -> None:
        client = _make_mock_client()
        meter = _make_meter(client)
        data = await meter.read_values()
        assert [c.args for c in client.read.await_args_list] == [(257, 6), (272, 7), (296, 6)]
        assert len(data) == 38

    @pytest.mark.asyncio
    async def test_concatenates_in_range_order_and_caches(self) -> None:
        chunks = [b"\x01" * 12, b"\x02" * 14, b"\x03" * 12]
        meter = _make_meter(_make_mock_client(chunks))
        data = await meter.read_values()
        assert data == b"".join(chunks)
        assert meter.cache == data

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self) -> None:
        async def _hang(address: int, count: int) -> bytes:
            await asyncio.sleep(10)
            return bytes(count * 2)

        client = _make_mock_client()
        client.read = AsyncMock(side_effect=_hang)
        meter = _make_meter(client, timeout_ms=20)
        with pytest.raises(TransportError, match="timed out after 20 ms"):
            await meter.read_values()
        assert meter.cache is None

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        client = _make_mock_client()
        client.read = AsyncMock(side_effect=TransportError("boom"))
        meter = _make_meter(client)
        with pytest.raises(TransportError, match="boom"):
            await meter.read_values()

    @pytest.mark.asyncio
    async def test_socket_error_raises_transport_error(self) -> None:
        client = _make_mock_client()
        client.read = AsyncMock(side_effect=ConnectionResetError("peer reset"))
        meter = _make_meter(client)
        with pytest.raises(TransportError, match="ERR_TRANSPORT: .*peer reset") as exc_info:
            await meter.read_values()
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert meter.cache is None


class TestPrepSnap:
    @pytest.mark.asyncio
    async def test_snapshot_structure(self, simulator: RegisterBlockSimulator) -> None:
        meter = _make_meter(simulator)
        snap = await meter.prep_snap(ts=_TS)

        assert isinstance(snap, Snapshot)
        assert snap.success is True
        assert snap.ts == _TS
        assert snap.config.model_dump() == {}
        values = snap.stats.powermeter_specific.instantaneous_values
        assert snap.stats.power_w == values.real_import_power_w
        assert snap.historical_average == values.real_import_power_w
        assert snap.derived_voltage == snap.stats.tension_v
        assert snap.instantaneous is values
        assert snap.timestamp == _TS

    @pytest.mark.asyncio
    async def test_default_tension_is_mean_of_line_voltages(
        self, simulator: RegisterBlockSimulator
    ) -> None:
        meter = _make_meter(simulator)
        snap = await meter.prep_snap()
        expected = (
            6888 * VOLTAGE_MULTIPLIER + 6890 * VOLTAGE_MULTIPLIER + 6853 * VOLTAGE_MULTIPLIER
        ) / 3
        assert snap.stats.tension_v == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_injected_tension_function(self, simulator: RegisterBlockSimulator) -> None:
        calls: list[tuple[float, float, float]] = []

        def _tension(a: float, b: float, c: float) -> float:
            calls.append((a, b, c))
            return 400.0

        meter = _make_meter(simulator, calculate_tension=_tension)
        snap = await meter.prep_snap()
        assert snap.stats.tension_v == 400.0
        assert calls == [
            (
                snap.instantaneous.voltage_v1_v12_v,
                snap.instantaneous.voltage_v2_v23_v,
                snap.instantaneous.voltage_v3_v31_v,
            )
        ]

    @pytest.mark.asyncio
    async def test_rolling_average_tracks_power(self, simulator: RegisterBlockSimulator) -> None:
        meter = _make_meter(simulator)
        first = await meter.prep_snap()

        simulator.write_register(276, 5000, signed=True)
        second = await meter.prep_snap()

        p1 = first.stats.power_w
        p2 = max(5000 * POWER_MULTIPLIER + ENG_LO, 0) * 1000
        assert second.stats.power_w == p2
        assert second.historical_average == pytest.approx((p1 + p2) / 2)
        assert len(meter.buffer) == 2

    @pytest.mark.asyncio
    async def test_read_from_cache_skips_read(self, simulator: RegisterBlockSimulator) -> None:
        meter = _make_meter(simulator)
        await meter.prep_snap()
        reads = simulator.reads

        snap = await meter.prep_snap(read_from_cache=True)
        assert simulator.reads == reads
        assert snap.stats.power_w == decode_instantaneous(meter.cache).real_import_power_w
        assert meter.buffer.cursor == 2

    @pytest.mark.asyncio
    async def test_read_from_cache_without_cache_raises_data_invalid(self) -> None:
        meter = _make_meter(_make_mock_client())
        with pytest.raises(DataInvalid):
            await meter.prep_snap(read_from_cache=True)

    @pytest.mark.asyncio
    async def test_short_read_raises_and_leaves_buffer_untouched(self) -> None:
        meter = _make_meter(_make_mock_client([b"\x00" * 12, b"\x00" * 14, b"\x00" * 4]))
        with pytest.raises(DataInsufficient):
            await meter.prep_snap()
        assert len(meter.buffer) == 0

    @pytest.mark.asyncio
    async def test_get_snap_reads_fresh(self, simulator: RegisterBlockSimulator) -> None:
        meter = _make_meter(simulator)
        await meter.get_snap()
        assert simulator.reads == 3


class TestAssembleSnapshot:
    def test_stores_power_and_averages(self, build_payload) -> None:
        buf = RollingAverageBuffer(15)
        buf.store(1000.0)
        values = decode_instantaneous(build_payload({20: 5000}))
        snap = assemble_snapshot(values, buf, ts=_TS)
        assert buf.slots[1] == values.real_import_power_w
        assert snap.historical_average == (1000.0 + values.real_import_power_w) / 2

    def test_snapshot_dump_matches_fleet_paths(self, build_payload) -> None:
        values = decode_instantaneous(build_payload({20: 5000}))
        dumped = assemble_snapshot(values, RollingAverageBuffer(3)).model_dump()
        assert dumped["stats"]["power_w"] == values.real_import_power_w
        historical = dumped["stats"]["powermeter_specific"]["historical_values"]
        assert historical["real_import_power_w_last15m_avg"] == values.real_import_power_w

    def test_average_line_voltage(self) -> None:
        assert average_line_voltage(400.0, 410.0, 420.0) == 410.0
