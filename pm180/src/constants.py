"""
Scaling constants for the PM180 register protocol.

The meter reports most analog quantities as raw codes in ``[RAW_LO, RAW_HI]``
that map linearly onto an engineering range.  The multipliers below are
derived once at import from the engineering/raw range pairs and reused by the
decoder for every poll.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------

RAW_LO: int = 0
"""Lowest raw code of every scaled field."""

RAW_HI: int = 9999
"""Highest raw code of every scaled field."""

ENG_LO: float = -108682.56
"""Engineering low of the power family (kW / kvar / kVA)."""

ENG_HI: float = 108682.56
"""Engineering high of the power family."""

LO_ENG: float = -1
"""Engineering low of the power-factor family."""

HI_ENG: float = 1
"""Engineering high of the power-factor family."""

VOLTAGE_ENG_RANGE: float = 45360
"""Full-scale span of the phase-to-phase voltage fields in volts."""

CURRENT_ENG_RANGE: float = 1198
"""Full-scale span of the phase current fields in amperes."""

KILO: int = 1000


def scaling_ratio(
    eng_lo: float,
    eng_hi: float,
    raw_lo: int = RAW_LO,
    raw_hi: int = RAW_HI,
) -> float:
    """Return the linear multiplier mapping a raw code onto an engineering range.

    Args:
        eng_lo: Engineering value represented by *raw_lo*.
        eng_hi: Engineering value represented by *raw_hi*.
        raw_lo: Lowest raw code (protocol constant, default ``RAW_LO``).
        raw_hi: Highest raw code (protocol constant, default ``RAW_HI``).

    Returns:
        ``(eng_hi - eng_lo) / (raw_hi - raw_lo)``.

    Raises:
        ValueError: If the resulting ratio is not strictly positive.
    """
    if raw_hi == raw_lo:
        raise ValueError("raw range must not be empty")
    ratio = (eng_hi - eng_lo) / (raw_hi - raw_lo)
    if ratio <= 0:
        msg = f"scaling ratio must be > 0 (eng=[{eng_lo}, {eng_hi}], raw=[{raw_lo}, {raw_hi}])"
        raise ValueError(msg)
    return ratio


# ---------------------------------------------------------------------------
# Derived multipliers
# ---------------------------------------------------------------------------

POWER_MULTIPLIER: float = scaling_ratio(ENG_LO, ENG_HI)
POWER_FACTOR_MULTIPLIER: float = scaling_ratio(LO_ENG, HI_ENG)
VOLTAGE_MULTIPLIER: float = scaling_ratio(0, VOLTAGE_ENG_RANGE)
CURRENT_MULTIPLIER: float = scaling_ratio(0, CURRENT_ENG_RANGE)

THD_MULTIPLIER: float = 0.001
"""Fixed THD multiplier; not derived from an engineering range."""
