"""
Pure decoder that converts a raw PM180 register block into InstantaneousValues.

Takes the concatenated big-endian payload of all register groups (as returned
by :meth:`~pm180.src.powermeter.PowerMeter.read_values`), reads every field at
its byte offset with the declared signedness, applies linear scaling and the
engineering-low offset, clamps negative excursions to zero and finally applies
the field's unit conversion.

Decoding is all-or-nothing: the input is validated up front and any failure
raises before a single field is produced.

This is a pure function: no side effects, no I/O, no clock.

CHANGELOG:
- 2026-10-19: Decode memoryviews by their raw bytes (STORY-004)
- 2026-10-19: Replace word-dict input with concatenated byte payload (STORY-004)
- 2026-10-19: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from pm180.src.errors import DataInsufficient, DataInvalid
from pm180.src.models import InstantaneousValues
from pm180.src.registers import PM180_PROFILE, DeviceProfile, RegisterDef

_BYTE_TYPES = (bytes, bytearray, memoryview)

# ---------------------------------------------------------------------------
# Type conversion helpers
# ---------------------------------------------------------------------------


def _convert_u16(raw: int) -> int:
    """Interpret a raw value as unsigned 16-bit (no conversion needed)."""
    return raw & 0xFFFF


def _convert_s16(raw: int) -> int:
    """Interpret a raw 16-bit value as signed (two's complement)."""
    val = raw & 0xFFFF
    if val >= 0x8000:
        val -= 0x10000
    return val


def _read_word(data: bytes | bytearray | memoryview, offset: int) -> int:
    """Read the big-endian 16-bit word at *offset*."""
    return (data[offset] << 8) | data[offset + 1]


# ---------------------------------------------------------------------------
# Core: scale a single field
# ---------------------------------------------------------------------------


def scale_value(reg_def: RegisterDef, raw: int) -> float:
    """Convert a raw 16-bit word into the register's engineering value.

    The word is interpreted per ``reg_def.reg_type``, multiplied by the
    register's multiplier, shifted by its engineering-low offset, clamped to
    zero, and finally multiplied by its unit factor.
    """
    code = _convert_s16(raw) if reg_def.signed else _convert_u16(raw)
    value = max(code * reg_def.multiplier + reg_def.offset, 0)
    if reg_def.unit_factor != 1:
        value = value * reg_def.unit_factor
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_instantaneous(
    data: object,
    profile: DeviceProfile = PM180_PROFILE,
) -> InstantaneousValues:
    """Decode a concatenated register payload into InstantaneousValues.

    Args:
        data: Big-endian payload of all register groups, concatenated in
            read order.
        profile: Device profile describing the byte layout.

    Returns:
        A frozen :class:`InstantaneousValues` with every field non-negative.

    Raises:
        DataInvalid: If *data* is not a byte buffer.
        DataInsufficient: If *data* is shorter than the profile payload.
    """
    if data is None or not isinstance(data, _BYTE_TYPES):
        raise DataInvalid("Expected a Buffer.")
    if isinstance(data, memoryview):
        # views of wider items (e.g. cast("H")) are read as their raw bytes
        data = data.tobytes()
    if len(data) < profile.payload_size:
        raise DataInsufficient(expected=profile.payload_size, actual=len(data))

    fields: dict[str, float] = {}
    for layout in profile.layout:
        raw = _read_word(data, layout.byte_offset)
        fields[layout.register.name] = scale_value(layout.register, raw)

    return InstantaneousValues(**fields)
