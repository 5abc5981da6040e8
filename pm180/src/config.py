"""
Edge daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs.  The meter fleet is supplied as a JSON list in
``DEVICES``; every device carries its own read timeout.

CHANGELOG:
- 2026-10-19: Replace single-inverter settings with a meter fleet (STORY-011)
- 2026-10-19: Initial creation (STORY-001)

TODO:
- None
"""

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings


class DeviceConfig(BaseModel):
    """Connection and placement settings of one PM180 meter.

    Attributes:
        device_id: Unique identifier. Defaults to ``host:port/unit_id``.
        host: Meter IP address / hostname.
        port: Modbus TCP port (default 502).
        unit_id: Modbus unit ID (0-247).
        timeout_ms: Upper bound for one complete register read.
        pos: Position label (e.g. ``"site"``), used by aggregation filters
            and groups.
        container: Container label, used by aggregation groups.
    """

    device_id: str = ""
    host: str
    port: int = 502
    unit_id: int = 1
    timeout_ms: int = 5000
    pos: str = ""
    container: str = ""

    @model_validator(mode="after")
    def _default_device_id(self) -> "DeviceConfig":
        """Default device_id to host:port/unit_id when not explicitly set."""
        if not self.device_id:
            self.device_id = f"{self.host}:{self.port}/{self.unit_id}"
        return self

    @field_validator("port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate Modbus TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("unit_id")
    @classmethod
    def unit_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus unit ID is in valid range (0-247)."""
        if v < 0 or v > 247:
            raise ValueError("unit_id must be between 0 and 247")
        return v

    @field_validator("timeout_ms")
    @classmethod
    def timeout_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout_ms must be > 0")
        return v


class FleetSettings(BaseSettings):
    """Edge daemon configuration for the PM180 fleet.

    Attributes:
        devices: Meters to poll (JSON list in the ``DEVICES`` env var).
        collect_snaps_itv_ms: Milliseconds between snapshots of each meter;
            also sizes the 15-minute rolling buffer.
        aggregate_interval_s: Seconds between fleet aggregation passes.
        log_level: Root log level.
    """

    devices: list[DeviceConfig] = []
    collect_snaps_itv_ms: int = 60000
    aggregate_interval_s: int = 60
    log_level: str = "INFO"

    @field_validator("collect_snaps_itv_ms")
    @classmethod
    def collect_interval_must_be_sane(cls, v: int) -> int:
        """Minimum one-second interval between snapshots of a meter."""
        if v < 1000:
            raise ValueError("COLLECT_SNAPS_ITV_MS must be >= 1000")
        return v

    @field_validator("aggregate_interval_s")
    @classmethod
    def aggregate_interval_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("AGGREGATE_INTERVAL_S must be >= 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard level name (got '{v}')")
        return level

    @model_validator(mode="after")
    def _device_ids_unique(self) -> "FleetSettings":
        ids = [d.device_id for d in self.devices]
        if len(ids) != len(set(ids)):
            raise ValueError("DEVICES must have unique device_id values")
        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
