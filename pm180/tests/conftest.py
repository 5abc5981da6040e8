"""
Shared test fixtures for the PM180 edge tests.

Provides environment isolation for FleetSettings, a fresh register-block
simulator per test, and payload builders for decoder tests.

CHANGELOG:
- 2026-10-19: Add simulator and payload fixtures (STORY-009)
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from pm180.src.simulator import RegisterBlockSimulator

# All FleetSettings environment variable names, used for cleanup.
_ALL_EDGE_ENV_VARS = (
    "DEVICES",
    "COLLECT_SNAPS_ITV_MS",
    "AGGREGATE_INTERVAL_S",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_edge_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all edge env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_EDGE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def simulator() -> Iterator[RegisterBlockSimulator]:
    """A freshly seeded simulator, closed after the test."""
    sim = RegisterBlockSimulator()
    yield sim
    sim.close()


def _build_payload(words: dict[int, int] | None = None, size: int = 38) -> bytes:
    """Return a *size*-byte payload with signed words written at byte offsets.

    Args:
        words: Mapping of byte offset -> value.  Negative values are written
            as two's complement.
        size: Total payload length in bytes.
    """
    data = bytearray(size)
    for offset, value in (words or {}).items():
        data[offset : offset + 2] = value.to_bytes(2, "big", signed=value < 0)
    return bytes(data)


@pytest.fixture()
def build_payload() -> object:
    """Payload builder, see :func:`_build_payload`."""
    return _build_payload
