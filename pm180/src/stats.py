"""
Declarative aggregation ops reducing many fleet entries into fleet metrics.

An operator spec is plain data (dotted source paths) plus explicit
``filter`` / ``group`` callables.  Three kinds exist:

- :class:`SumOp` -- one sum over every entry passing ``filter``.
- :class:`GroupSumOp` -- one sum per ``group`` key.
- :class:`GroupMultipleStatsOp` -- per ``group`` key, one named sum for each
  ``(name, src)`` pair.

Values are pulled from entries with :func:`resolve_path`, which never raises:
a missing segment yields :data:`MISSING` and the entry is left out of the
reduction (it does not count as zero).

Specs are registered once at import into :data:`SPECS`, an immutable mapping
``device_type -> op_name -> spec``.  A device type's ops extend its base
type's ops; a later op with the same name overrides the earlier one.

CHANGELOG:
- 2026-10-19: Group unhashable keys under None (STORY-008)
- 2026-10-19: Add PM180 site / container / position ops (STORY-008)
- 2026-10-19: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, ClassVar

from pm180.src import status

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Safe path resolution
# ---------------------------------------------------------------------------


class _Missing:
    """Sentinel type for an unresolvable path."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()
"""Returned by :func:`resolve_path` when any segment is absent."""


def resolve_path(entry: Any, path: str) -> Any:
    """Follow a dotted *path* through nested mappings or attributes.

    Args:
        entry: Root record (usually a fleet entry dict).
        path: Dotted path such as ``"last.snap.stats.power_w"``.

    Returns:
        The value at the path, or :data:`MISSING` if any segment is absent
        or an intermediate value is ``None``.
    """
    node = entry
    for segment in path.split("."):
        if node is None or node is MISSING:
            return MISSING
        if isinstance(node, Mapping):
            node = node.get(segment, MISSING)
        else:
            node = getattr(node, segment, MISSING)
    return node


def _as_number(value: Any) -> float | None:
    """Return *value* as a float if it is a real number, else None."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


# ---------------------------------------------------------------------------
# Filter / group helpers
# ---------------------------------------------------------------------------

FilterFn = Callable[[Mapping[str, Any]], bool]
GroupFn = Callable[[Mapping[str, Any]], Hashable]


def accept_all(entry: Mapping[str, Any]) -> bool:  # noqa: ARG001
    return True


def group_by(path: str) -> GroupFn:
    """Return a key extractor reading *path*.

    Missing and unhashable keys (e.g. a list) group under None.
    """

    def _key(entry: Mapping[str, Any]) -> Hashable:
        value = resolve_path(entry, path)
        if value is MISSING:
            return None
        try:
            hash(value)
        except TypeError:
            logger.warning("Unhashable group key at '%s': %r", path, value)
            return None
        return value

    _key.__name__ = f"group_by({path})"
    return _key


def field_equals(path: str, expected: Any) -> FilterFn:
    """Return a filter accepting entries whose *path* equals *expected*."""

    def _filter(entry: Mapping[str, Any]) -> bool:
        value = resolve_path(entry, path)
        return value is not MISSING and value == expected

    return _filter


# ---------------------------------------------------------------------------
# Operator specs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SumOp:
    """Sum of the numeric value at ``src`` over entries passing ``filter``."""

    src: str
    filter: FilterFn = accept_all
    op: ClassVar[str] = "sum"


@dataclass(frozen=True)
class GroupSumOp:
    """Per-group sum of the numeric value at ``src``."""

    src: str
    group: GroupFn
    filter: FilterFn = accept_all
    op: ClassVar[str] = "group_sum"


@dataclass(frozen=True)
class StatSource:
    """A named source path of a :class:`GroupMultipleStatsOp`."""

    name: str
    src: str


@dataclass(frozen=True)
class GroupMultipleStatsOp:
    """Per-group sums of several named source paths."""

    srcs: tuple[StatSource, ...]
    group: GroupFn
    filter: FilterFn = accept_all
    op: ClassVar[str] = "group_multiple_stats"


OperatorSpec = SumOp | GroupSumOp | GroupMultipleStatsOp

SpecTable = Mapping[str, Mapping[str, OperatorSpec]]


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------


def _run_sum(spec: SumOp, entries: list[Mapping[str, Any]]) -> float:
    total = 0.0
    for entry in entries:
        if not spec.filter(entry):
            continue
        value = _as_number(resolve_path(entry, spec.src))
        if value is not None:
            total += value
    return total


def _run_group_sum(
    spec: GroupSumOp,
    entries: list[Mapping[str, Any]],
) -> dict[Hashable, float]:
    sums: dict[Hashable, float] = {}
    for entry in entries:
        if not spec.filter(entry):
            continue
        value = _as_number(resolve_path(entry, spec.src))
        if value is None:
            continue
        key = spec.group(entry)
        sums[key] = sums.get(key, 0.0) + value
    return sums


def _run_group_multiple_stats(
    spec: GroupMultipleStatsOp,
    entries: list[Mapping[str, Any]],
) -> dict[Hashable, dict[str, float]]:
    groups: dict[Hashable, dict[str, float]] = {}
    for entry in entries:
        if not spec.filter(entry):
            continue
        key = spec.group(entry)
        for source in spec.srcs:
            value = _as_number(resolve_path(entry, source.src))
            if value is None:
                continue
            stats = groups.setdefault(key, {})
            stats[source.name] = stats.get(source.name, 0.0) + value
    return groups


def run_op(spec: OperatorSpec, entries: Iterable[Mapping[str, Any]]) -> Any:
    """Reduce *entries* with a single operator spec.

    Returns:
        A float for :class:`SumOp`, ``{group: float}`` for
        :class:`GroupSumOp`, ``{group: {name: float}}`` for
        :class:`GroupMultipleStatsOp`.

    Raises:
        TypeError: If *spec* is not a known operator spec.
    """
    items = list(entries)
    if isinstance(spec, SumOp):
        return _run_sum(spec, items)
    if isinstance(spec, GroupSumOp):
        return _run_group_sum(spec, items)
    if isinstance(spec, GroupMultipleStatsOp):
        return _run_group_multiple_stats(spec, items)
    raise TypeError(f"Unsupported operator spec: {spec!r}")


def aggregate(
    specs: SpecTable,
    device_type: str,
    entries: Iterable[Mapping[str, Any]],
) -> dict[str, Any]:
    """Run every op registered for *device_type* over *entries*.

    Raises:
        KeyError: If *device_type* has no registered ops.
    """
    ops = specs[device_type]
    items = list(entries)
    results = {name: run_op(spec, items) for name, spec in ops.items()}
    logger.debug("Aggregated %d ops over %d entries for '%s'", len(results), len(items), device_type)
    return results


# ---------------------------------------------------------------------------
# Spec registration
# ---------------------------------------------------------------------------


def extend_ops(
    base: Mapping[str, OperatorSpec],
    overrides: Mapping[str, OperatorSpec],
) -> Mapping[str, OperatorSpec]:
    """Return *base* extended with *overrides*; overrides win on name clashes."""
    return MappingProxyType({**base, **overrides})


def build_specs(table: Mapping[str, Mapping[str, OperatorSpec]]) -> SpecTable:
    """Freeze a ``device_type -> op_name -> spec`` table."""
    return MappingProxyType({dtype: MappingProxyType(dict(ops)) for dtype, ops in table.items()})


POWER_W_SRC = "last.snap.stats.power_w"
TENSION_V_SRC = "last.snap.stats.tension_v"
LAST15M_AVG_SRC = (
    "last.snap.stats.powermeter_specific.historical_values.real_import_power_w_last15m_avg"
)


def _online_with_stats(entry: Mapping[str, Any]) -> bool:
    """Entries with a populated snap whose meter is classified online."""
    snap = resolve_path(entry, "last.snap")
    stats = resolve_path(snap, "stats")
    if stats is MISSING or stats is None:
        return False
    return not status.is_offline(snap)


POWERMETER_DEFAULT_OPS: Mapping[str, OperatorSpec] = MappingProxyType(
    {
        "power_w": SumOp(src=POWER_W_SRC),
        "tension_v_pos_group_sum": GroupSumOp(
            src=TENSION_V_SRC,
            group=group_by("info.pos"),
        ),
    }
)

PM180_OPS: Mapping[str, OperatorSpec] = MappingProxyType(
    {
        "site_power_w": SumOp(
            src=POWER_W_SRC,
            filter=field_equals("info.pos", "site"),
        ),
        "power_w_container_group_sum": GroupSumOp(
            src=POWER_W_SRC,
            group=group_by("info.container"),
        ),
        "powermeter_specific_stats_group": GroupMultipleStatsOp(
            srcs=(
                StatSource(
                    name="real_import_power_w_last15m_avg",
                    src=LAST15M_AVG_SRC,
                ),
            ),
            group=group_by("info.pos"),
            filter=_online_with_stats,
        ),
    }
)

SPECS: SpecTable = build_specs(
    {
        "powermeter_default": POWERMETER_DEFAULT_OPS,
        "powermeter": extend_ops(POWERMETER_DEFAULT_OPS, PM180_OPS),
    }
)
"""Immutable spec table, read concurrently by every aggregation pass."""
