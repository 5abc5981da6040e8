"""
Pydantic models for decoded PM180 telemetry snapshots.

Defines the immutable records produced by one poll cycle: the 18 decoded
instantaneous values, the rolling historical values, and the snapshot that
bundles them with the derived line voltage.  The snapshot's nested shape is
what fleet entries expose to the aggregation ops, so field names double as
dotted path segments (``last.snap.stats.power_w``).

CHANGELOG:
- 2026-10-19: Freeze the snap config (STORY-004)
- 2026-10-19: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

_FROZEN = ConfigDict(frozen=True)


class InstantaneousValues(BaseModel):
    """The 18 engineering-unit readings decoded from one register block.

    Every value is non-negative: physical excursions below zero are clamped
    by the decoder.  Power factors are dimensionless, THD values are in
    percent, ``real_import_power_w`` is in watts and the remaining power
    fields keep the meter's kilo-units.
    """

    model_config = _FROZEN

    voltage_v1_v12_v: float = Field(ge=0)
    voltage_v2_v23_v: float = Field(ge=0)
    voltage_v3_v31_v: float = Field(ge=0)
    current_i1_a: float = Field(ge=0)
    current_i2_a: float = Field(ge=0)
    current_i3_a: float = Field(ge=0)
    power_factor_l1: float = Field(ge=0)
    power_factor_l2: float = Field(ge=0)
    power_factor_l3: float = Field(ge=0)
    real_import_power_w: float = Field(ge=0)
    reactive_power_k_var: float = Field(ge=0)
    apparent_import_power_kva: float = Field(ge=0)
    voltage_1_2_thd: float = Field(ge=0)
    voltage_2_3_thd: float = Field(ge=0)
    voltage_3_1_thd: float = Field(ge=0)
    current_i1_thd: float = Field(ge=0)
    current_i2_thd: float = Field(ge=0)
    current_i3_thd: float = Field(ge=0)


class HistoricalValues(BaseModel):
    """Values computed over the rolling window."""

    model_config = _FROZEN

    real_import_power_w_last15m_avg: float


class PowermeterSpecific(BaseModel):
    model_config = _FROZEN

    instantaneous_values: InstantaneousValues
    historical_values: HistoricalValues


class SnapStats(BaseModel):
    """Fleet-facing stats of a snapshot.

    Attributes:
        power_w: Real import power in watts (mirrors the instantaneous value).
        tension_v: Derived line voltage in volts.
        powermeter_specific: Full decoded and historical values.
    """

    model_config = _FROZEN

    power_w: float
    tension_v: float
    powermeter_specific: PowermeterSpecific


class SnapConfig(BaseModel):
    """Device configuration reported with a snap.

    Open-ended: any keyword is accepted, and the result is frozen like the
    rest of the snapshot.
    """

    model_config = ConfigDict(frozen=True, extra="allow")


class Snapshot(BaseModel):
    """One immutable poll result for a single meter.

    Attributes:
        success: Always True for an assembled snapshot; failed polls produce
            no snapshot at all.
        ts: Timestamp of the poll (injected by the caller).
        stats: Decoded telemetry.
        config: Device configuration reported with the snap (empty for PM180).
    """

    model_config = _FROZEN

    success: bool = True
    ts: datetime | None = None
    stats: SnapStats
    config: SnapConfig = Field(default_factory=SnapConfig)

    @property
    def instantaneous(self) -> InstantaneousValues:
        return self.stats.powermeter_specific.instantaneous_values

    @property
    def historical_average(self) -> float:
        return self.stats.powermeter_specific.historical_values.real_import_power_w_last15m_avg

    @property
    def derived_voltage(self) -> float:
        return self.stats.tension_v

    @property
    def timestamp(self) -> datetime | None:
        return self.ts
