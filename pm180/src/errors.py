"""
Error taxonomy for the PM180 pipeline.

Every error raised by the decoder, the meter, the transport, or the register
simulator derives from :class:`PowerMeterError` so that the fleet runner can
isolate a single device's failure with one ``except`` clause.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations


class PowerMeterError(Exception):
    """Base class for all PM180 pipeline errors."""

    code: str = "ERR_POWERMETER"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(f"{self.code}: {detail}" if detail else self.code)


class DataInvalid(PowerMeterError):
    """Decoder input is not a byte buffer."""

    code = "ERR_DATA_INVALID"


class DataInsufficient(PowerMeterError):
    """Decoder input is shorter than the register payload.

    Attributes:
        expected: Number of bytes the decoder requires.
        actual: Number of bytes received.
    """

    code = "ERR_DATA_INSUFFICIENT"

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} bytes but received {actual}.")


class TransportError(PowerMeterError):
    """A register read failed, timed out, or returned a Modbus error."""

    code = "ERR_TRANSPORT"


class AddressInvalid(PowerMeterError):
    """Requested register range lies outside every served window."""

    code = "ERR_ADDRESS_INVALID"


class NoClient(PowerMeterError):
    """A power meter was constructed without a client factory."""

    code = "ERR_NO_CLIENT"
