"""
Online/offline classification of a meter snapshot.

Aggregation filters delegate here instead of re-deriving device status, so
the classification rule lives in exactly one place.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

OFFLINE = "offline"


def is_offline(snap: Mapping[str, Any] | None) -> bool:
    """Return True if *snap* does not describe a live, successfully polled meter.

    A snap is offline when it is missing, reports ``success`` as false, or
    carries ``stats.status == "offline"``.
    """
    if not snap:
        return True
    if snap.get("success") is False:
        return True
    stats = snap.get("stats")
    if isinstance(stats, Mapping) and stats.get("status") == OFFLINE:
        return True
    return False
