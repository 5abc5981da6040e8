"""
Edge daemon main loop for the PM180 fleet telemetry pipeline.

Runs one asyncio poll loop per meter plus one aggregation loop:

1. **Poll loops**: each meter's :class:`PowerMeter` produces a snapshot;
   the latest snapshot (or the latest error) is kept as that device's fleet
   entry.  A failing meter never affects the others: its entry keeps the
   stale snapshot, records the error and backs off exponentially.
2. **Aggregation loop**: reduces all fleet entries through the ops
   registered for the device type in :data:`~pm180.src.stats.SPECS` and logs
   the resulting fleet metrics.

Graceful shutdown on SIGTERM/SIGINT sets a shared asyncio.Event, letting
every loop finish its current iteration before the meters are closed.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Replace poll/upload loops with per-meter poll loops and fleet aggregation (STORY-012)
- 2026-10-19: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pm180.src.errors import PowerMeterError
from pm180.src.powermeter import ClientFactory, PowerMeter
from pm180.src.registers import PM180_PROFILE
from pm180.src.stats import SPECS, SpecTable, aggregate
from pm180.src.transport import modbus_client_factory

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pm180.src.config import DeviceConfig, FleetSettings
    from pm180.src.models import Snapshot

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_BACKOFF_S: float = 1.0
"""Initial backoff delay in seconds after the first poll failure."""

MAX_BACKOFF_S: float = 60.0
"""Maximum backoff delay in seconds (cap for exponential growth)."""


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the edge daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_config_summary(settings: FleetSettings) -> None:
    """Log a config summary at startup."""
    logger.info(
        "Edge daemon starting with config: devices=%s, collect_snaps_itv_ms=%s, "
        "aggregate_interval_s=%s, log_level=%s",
        [f"{d.device_id}@{d.host}:{d.port}/{d.unit_id}" for d in settings.devices],
        settings.collect_snaps_itv_ms,
        settings.aggregate_interval_s,
        settings.log_level,
    )


# ---------------------------------------------------------------------------
# Per-device state
# ---------------------------------------------------------------------------


@dataclass
class DeviceState:
    """Mutable poll state of one meter, owned by its poll loop."""

    config: DeviceConfig
    meter: PowerMeter
    snap: Snapshot | None = None
    err: str | None = None
    last_poll_ts: datetime | None = None
    consecutive_failures: int = 0

    def entry(self) -> dict[str, Any]:
        """Fleet entry consumed by the aggregation ops."""
        return {
            "info": {
                "device_id": self.config.device_id,
                "pos": self.config.pos,
                "container": self.config.container,
                "address": self.config.host,
                "port": self.config.port,
                "unit_id": self.config.unit_id,
            },
            "last": {
                "snap": self.snap.model_dump() if self.snap is not None else None,
                "err": self.err,
                "ts": self.last_poll_ts,
            },
        }


def backoff_delay(consecutive_failures: int) -> float:
    """Exponential backoff for *consecutive_failures*, 0 when healthy."""
    if consecutive_failures <= 0:
        return 0.0
    return min(BASE_BACKOFF_S * (2 ** (consecutive_failures - 1)), MAX_BACKOFF_S)


# ---------------------------------------------------------------------------
# Fleet runner
# ---------------------------------------------------------------------------


class FleetRunner:
    """Polls a fleet of meters and aggregates their latest snapshots.

    Args:
        devices: Meter configurations.
        collect_snaps_itv_ms: Milliseconds between polls of each meter.
        get_client: Client factory shared by all meters.
        aggregate_interval_s: Seconds between aggregation passes.
        specs: Aggregation spec table.
    """

    def __init__(
        self,
        devices: Sequence[DeviceConfig],
        *,
        collect_snaps_itv_ms: int,
        get_client: ClientFactory | None = modbus_client_factory,
        aggregate_interval_s: float = 60,
        specs: SpecTable = SPECS,
    ) -> None:
        self.collect_snaps_itv_ms = collect_snaps_itv_ms
        self.aggregate_interval_s = aggregate_interval_s
        self.device_type = PM180_PROFILE.device_type
        self._specs = specs
        self.states: dict[str, DeviceState] = {}
        for device in devices:
            meter = PowerMeter(
                get_client=get_client,
                host=device.host,
                port=device.port,
                unit_id=device.unit_id,
                timeout_ms=device.timeout_ms,
                collect_snaps_itv_ms=collect_snaps_itv_ms,
                profile=PM180_PROFILE,
            )
            self.states[device.device_id] = DeviceState(config=device, meter=meter)
        self.last_metrics: dict[str, Any] = {}

    # -- single iterations (easily testable) --

    async def poll_device_once(self, device_id: str) -> bool:
        """Execute a single poll of one meter and record the outcome.

        Catches pipeline errors so that the caller's loop is never broken;
        the previous snapshot is kept when the poll fails.

        Returns:
            True if a new snapshot was recorded, False otherwise.
        """
        state = self.states[device_id]
        state.last_poll_ts = datetime.now(tz=UTC)
        try:
            snap = await state.meter.get_snap()
        except PowerMeterError as exc:
            state.err = str(exc)
            state.consecutive_failures += 1
            logger.error(
                "Poll failed for device=%s (consecutive failures: %d)",
                device_id,
                state.consecutive_failures,
                exc_info=True,
            )
            return False

        state.snap = snap
        state.err = None
        state.consecutive_failures = 0
        logger.info(
            "Poll success: device=%s power_w=%.1f",
            device_id,
            snap.stats.power_w,
        )
        return True

    def entries(self) -> list[dict[str, Any]]:
        return [state.entry() for state in self.states.values()]

    def aggregate_once(self) -> dict[str, Any]:
        """Run every registered op over the current fleet entries."""
        metrics = aggregate(self._specs, self.device_type, self.entries())
        self.last_metrics = metrics
        logger.info("Fleet metrics: %s", metrics)
        return metrics

    # -- loop runners --

    async def _poll_loop(self, device_id: str, shutdown_event: asyncio.Event) -> None:
        interval_s = self.collect_snaps_itv_ms / 1000.0
        logger.info("Poll loop started for device=%s (interval=%ss)", device_id, interval_s)
        while not shutdown_event.is_set():
            try:
                await self.poll_device_once(device_id)
            except Exception:
                logger.error("Poll cycle error for device=%s", device_id, exc_info=True)

            delay = backoff_delay(self.states[device_id].consecutive_failures)
            if delay > 0:
                logger.warning(
                    "Backoff: device=%s sleeping %.1fs extra before retry",
                    device_id,
                    delay,
                )
            # Use wait with timeout so we can check shutdown between sleeps
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval_s + delay)
        logger.info("Poll loop stopped for device=%s", device_id)

    async def _aggregate_loop(self, shutdown_event: asyncio.Event) -> None:
        logger.info("Aggregation loop started (interval=%ss)", self.aggregate_interval_s)
        while not shutdown_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=self.aggregate_interval_s,
                )
            try:
                self.aggregate_once()
            except Exception:
                logger.error("Aggregation pass error", exc_info=True)
        logger.info("Aggregation loop stopped")

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Run all poll loops and the aggregation loop until shutdown."""
        logger.info("Starting %d poll loops and the aggregation loop", len(self.states))
        try:
            await asyncio.gather(
                *(self._poll_loop(device_id, shutdown_event) for device_id in self.states),
                self._aggregate_loop(shutdown_event),
            )
        finally:
            self.close()
        logger.info("Shutdown complete")

    def close(self) -> None:
        for state in self.states.values():
            state.meter.close()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build the fleet runner, run loops.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    from pm180.src.config import FleetSettings

    settings = FleetSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    runner = FleetRunner(
        settings.devices,
        collect_snaps_itv_ms=settings.collect_snaps_itv_ms,
        aggregate_interval_s=settings.aggregate_interval_s,
    )
    await runner.run(shutdown_event)


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the edge daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
