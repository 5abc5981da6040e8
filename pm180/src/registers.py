"""
Satec PM180 Modbus TCP register map -- single source of truth.

Defines the register addresses, data types, scaling multipliers, offsets and
unit conversions for the PM180 power meter read via function code 0x03
(holding registers).  Registers are organised into contiguous groups; the
meter profile reads every group in order and concatenates the responses into
one big-endian payload, so each register's byte offset in that payload is
derived from its group's position.

Device specialisation is expressed as a :class:`DeviceProfile` value rather
than a subclass: the decoder, the meter and the simulator are all driven by
the profile they are handed.

CHANGELOG:
- 2026-10-19: Store group registers as tuples so profiles are hashable (STORY-004)
- 2026-10-19: Derive payload byte offsets from group layout (STORY-004)
- 2026-10-19: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pm180.src.constants import (
    CURRENT_MULTIPLIER,
    ENG_LO,
    KILO,
    LO_ENG,
    POWER_FACTOR_MULTIPLIER,
    POWER_MULTIPLIER,
    THD_MULTIPLIER,
    VOLTAGE_MULTIPLIER,
)

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------

_VALID_TYPES: frozenset[str] = frozenset({"U16", "S16"})


@dataclass(frozen=True, slots=True)
class RegisterDef:
    """Definition of a single 16-bit PM180 register.

    Attributes:
        address: Modbus holding register address.
        name: Unique field name used as key in the decoded values.
        reg_type: Data type -- ``"U16"`` or ``"S16"`` (big-endian).
        unit: Engineering unit string of the decoded value.
        multiplier: Linear scaling multiplier applied to the raw code.
        offset: Engineering-low offset added after scaling (``0`` for
            fields whose range starts at zero).
        unit_factor: Post-clamp unit conversion factor (e.g. ``1000`` for
            kW -> W).
        description: Free-text description of the register.
    """

    address: int
    name: str
    reg_type: str
    unit: str
    multiplier: float
    offset: float = 0.0
    unit_factor: float = 1
    description: str = ""

    def __post_init__(self) -> None:  # noqa: D105
        if self.reg_type not in _VALID_TYPES:
            msg = f"Register '{self.name}': unsupported type '{self.reg_type}'"
            raise ValueError(msg)

    @property
    def signed(self) -> bool:
        return self.reg_type == "S16"


@dataclass(frozen=True, slots=True)
class RegisterGroup:
    """A contiguous range of registers read in one call.

    Attributes:
        group_name: Human-readable group identifier (e.g. ``"voltage_current"``).
        start_address: First register address in the batch.
        count: Total number of 16-bit words to read.
        registers: Ordered tuple of decoded :class:`RegisterDef` in this range.
            Words inside the range that carry no field are simply skipped.
    """

    group_name: str
    start_address: int
    count: int
    registers: tuple[RegisterDef, ...]

    @property
    def end_address(self) -> int:
        """Last register address covered by the group (inclusive)."""
        return self.start_address + self.count - 1

    def contains(self, address: int, quantity: int = 1) -> bool:
        """Return True if ``[address, address + quantity)`` lies inside the group."""
        return (
            quantity >= 1
            and address >= self.start_address
            and address + quantity - 1 <= self.end_address
        )


@dataclass(frozen=True, slots=True)
class FieldLayout:
    """A register placed at its byte offset within the concatenated payload."""

    register: RegisterDef
    byte_offset: int


@dataclass(frozen=True)
class DeviceProfile:
    """Everything that distinguishes one meter type from another.

    Attributes:
        device_type: Type identifier used to look up aggregation specs.
        groups: Register groups, in read order.
    """

    device_type: str
    groups: tuple[RegisterGroup, ...]
    layout: tuple[FieldLayout, ...] = field(init=False, repr=False)
    payload_size: int = field(init=False)

    def __post_init__(self) -> None:  # noqa: D105
        layout: list[FieldLayout] = []
        base = 0
        for group in self.groups:
            for reg in group.registers:
                if not group.contains(reg.address):
                    msg = (
                        f"Register '{reg.name}' (address={reg.address}) lies "
                        f"outside group '{group.group_name}'"
                    )
                    raise ValueError(msg)
                offset = base + (reg.address - group.start_address) * 2
                layout.append(FieldLayout(register=reg, byte_offset=offset))
            base += group.count * 2
        # frozen=True requires object.__setattr__
        object.__setattr__(self, "layout", tuple(layout))
        object.__setattr__(self, "payload_size", base)

    @property
    def field_names(self) -> tuple[str, ...]:
        """Decoded field names in payload order."""
        return tuple(f.register.name for f in self.layout)

    @property
    def read_ranges(self) -> tuple[tuple[int, int], ...]:
        """``(start_address, count)`` pairs in read order."""
        return tuple((g.start_address, g.count) for g in self.groups)


# ---------------------------------------------------------------------------
# Voltage / current group (addresses 257-262)
# ---------------------------------------------------------------------------

_VOLTAGE_CURRENT_REGISTERS: list[RegisterDef] = [
    RegisterDef(
        address=257,
        name="voltage_v1_v12_v",
        reg_type="S16",
        unit="V",
        multiplier=VOLTAGE_MULTIPLIER,
        description="Phase 1 / line 1-2 voltage",
    ),
    RegisterDef(
        address=258,
        name="voltage_v2_v23_v",
        reg_type="U16",
        unit="V",
        multiplier=VOLTAGE_MULTIPLIER,
        description="Phase 2 / line 2-3 voltage",
    ),
    RegisterDef(
        address=259,
        name="voltage_v3_v31_v",
        reg_type="S16",
        unit="V",
        multiplier=VOLTAGE_MULTIPLIER,
        description="Phase 3 / line 3-1 voltage",
    ),
    RegisterDef(
        address=260,
        name="current_i1_a",
        reg_type="S16",
        unit="A",
        multiplier=CURRENT_MULTIPLIER,
        description="Phase 1 current",
    ),
    RegisterDef(
        address=261,
        name="current_i2_a",
        reg_type="U16",
        unit="A",
        multiplier=CURRENT_MULTIPLIER,
        description="Phase 2 current",
    ),
    RegisterDef(
        address=262,
        name="current_i3_a",
        reg_type="S16",
        unit="A",
        multiplier=CURRENT_MULTIPLIER,
        description="Phase 3 current",
    ),
]

VOLTAGE_CURRENT_GROUP = RegisterGroup(
    group_name="voltage_current",
    start_address=257,
    count=6,  # 257..262 inclusive = 6 words
    registers=tuple(_VOLTAGE_CURRENT_REGISTERS),
)

# ---------------------------------------------------------------------------
# Power factor / power group (addresses 272-278)
# Register 275 is read but carries no decoded field.
# ---------------------------------------------------------------------------

_POWER_REGISTERS: list[RegisterDef] = [
    RegisterDef(
        address=272,
        name="power_factor_l1",
        reg_type="S16",
        unit="",
        multiplier=POWER_FACTOR_MULTIPLIER,
        offset=LO_ENG,
        description="Phase 1 power factor",
    ),
    RegisterDef(
        address=273,
        name="power_factor_l2",
        reg_type="S16",
        unit="",
        multiplier=POWER_FACTOR_MULTIPLIER,
        offset=LO_ENG,
        description="Phase 2 power factor",
    ),
    RegisterDef(
        address=274,
        name="power_factor_l3",
        reg_type="S16",
        unit="",
        multiplier=POWER_FACTOR_MULTIPLIER,
        offset=LO_ENG,
        description="Phase 3 power factor",
    ),
    RegisterDef(
        address=276,
        name="real_import_power_w",
        reg_type="S16",
        unit="W",
        multiplier=POWER_MULTIPLIER,
        offset=ENG_LO,
        unit_factor=KILO,
        description="Total real import power (reported in kW, decoded to W)",
    ),
    RegisterDef(
        address=277,
        name="reactive_power_k_var",
        reg_type="U16",
        unit="kvar",
        multiplier=POWER_MULTIPLIER,
        offset=ENG_LO,
        description="Total reactive power",
    ),
    RegisterDef(
        address=278,
        name="apparent_import_power_kva",
        reg_type="S16",
        unit="kVA",
        multiplier=POWER_MULTIPLIER,
        offset=ENG_LO,
        description="Total apparent import power",
    ),
]

POWER_GROUP = RegisterGroup(
    group_name="power",
    start_address=272,
    count=7,  # 272..278 inclusive = 7 words
    registers=tuple(_POWER_REGISTERS),
)

# ---------------------------------------------------------------------------
# Harmonic distortion group (addresses 296-301)
# ---------------------------------------------------------------------------

_THD_REGISTERS: list[RegisterDef] = [
    RegisterDef(
        address=address,
        name=name,
        reg_type="U16",
        unit="%",
        multiplier=THD_MULTIPLIER,
        description=description,
    )
    for address, name, description in (
        (296, "voltage_1_2_thd", "Voltage 1-2 total harmonic distortion"),
        (297, "voltage_2_3_thd", "Voltage 2-3 total harmonic distortion"),
        (298, "voltage_3_1_thd", "Voltage 3-1 total harmonic distortion"),
        (299, "current_i1_thd", "Current I1 total harmonic distortion"),
        (300, "current_i2_thd", "Current I2 total harmonic distortion"),
        (301, "current_i3_thd", "Current I3 total harmonic distortion"),
    )
]

THD_GROUP = RegisterGroup(
    group_name="thd",
    start_address=296,
    count=6,  # 296..301 inclusive = 6 words
    registers=tuple(_THD_REGISTERS),
)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

ALL_GROUPS: list[RegisterGroup] = [
    VOLTAGE_CURRENT_GROUP,
    POWER_GROUP,
    THD_GROUP,
]
"""All register groups in mandatory read order."""

ALL_REGISTERS: dict[str, RegisterDef] = {
    reg.name: reg for group in ALL_GROUPS for reg in group.registers
}
"""Flat lookup of every register by name."""

PM180_PROFILE = DeviceProfile(
    device_type="powermeter",
    groups=tuple(ALL_GROUPS),
)
"""Profile of the Satec PM180 meter."""
