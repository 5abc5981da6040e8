"""
Async Modbus TCP transport for PM180 meters.

Wraps a pymodbus ``AsyncModbusTcpClient`` behind the minimal register-client
interface the meter needs: ``read(address, count) -> bytes``.  Each call
issues one read-holding-registers request (function code 0x03) and packs the
returned 16-bit words big-endian, exactly as they appear on the wire.

Every failure -- connect refused, Modbus exception response, pymodbus or
socket error -- surfaces as :class:`~pm180.src.errors.TransportError`.
The transport never retries; backoff belongs to the fleet runner.

CHANGELOG:
- 2026-10-19: Switch to holding registers and raw byte results (STORY-010)
- 2026-10-19: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import logging
import struct

from pm180.src.errors import TransportError
from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MODBUS_TIMEOUT_S: float = 10.0
"""Fallback timeout per Modbus TCP request in seconds."""


class ModbusTransport:
    """Lazily connected Modbus TCP register client for one meter.

    Args:
        host: Meter IP address or hostname.
        port: Modbus TCP port (default 502).
        unit_id: Modbus unit ID passed as ``device_id``.
        timeout_s: Per-request timeout in seconds.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout_s: float = MODBUS_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._unit_id = unit_id
        self._client = AsyncModbusTcpClient(host, port=port, timeout=timeout_s)

    async def _ensure_connected(self) -> None:
        if self._client.connected:
            return
        try:
            ok = await self._client.connect()
        except (ModbusException, OSError) as exc:
            raise TransportError(f"failed to connect to {self._host}:{self._port}") from exc
        if not ok:
            raise TransportError(
                f"failed to connect to {self._host}:{self._port} (connect returned False)"
            )
        logger.info("Connected to Modbus device %s:%d", self._host, self._port)

    async def read(self, address: int, count: int) -> bytes:
        """Read *count* holding registers starting at *address*.

        Returns:
            ``count * 2`` big-endian bytes.

        Raises:
            TransportError: On connection failure, Modbus error response,
                short response, or pymodbus/socket error.
        """
        await self._ensure_connected()
        try:
            response = await self._client.read_holding_registers(
                address,
                count=count,
                device_id=self._unit_id,
            )
        except (ModbusException, OSError) as exc:
            raise TransportError(
                f"read failed (address={address}, count={count}) on {self._host}:{self._port}"
            ) from exc

        if response.isError():
            raise TransportError(
                f"Modbus error response (address={address}, count={count}) "
                f"from {self._host}:{self._port}"
            )

        words = list(response.registers)
        if len(words) < count:
            raise TransportError(
                f"short response (address={address}): expected {count} words, got {len(words)}"
            )
        return struct.pack(f">{count}H", *words[:count])

    def close(self) -> None:
        self._client.close()


def modbus_client_factory(
    *,
    host: str,
    port: int,
    unit_id: int,
    timeout_s: float,
) -> ModbusTransport:
    """Default client factory handed to :class:`~pm180.src.powermeter.PowerMeter`."""
    return ModbusTransport(host=host, port=port, unit_id=unit_id, timeout_s=timeout_s)
