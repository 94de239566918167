"""
GX edge client configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs, serials or credentials.

CHANGELOG:
- 2026-10-17: Initial creation

TODO:
- None
"""

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

_FORBIDDEN_SERIAL_CHARS = frozenset("/+#")


class GxSettings(BaseSettings):
    """GX edge client configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        gx_host: GX device IP address / hostname (runs the MQTT broker).
        gx_serial: GX portal id used in every topic (``N/<serial>/...``).
        mqtt_port: MQTT broker port (default 1883).
        mqtt_client_id: MQTT client identifier.
        mqtt_username: Optional broker username.
        mqtt_password: Optional broker password (never logged).
        mqtt_keepalive_s: MQTT protocol keepalive in seconds.
        keepalive_interval_s: Seconds between ``R/<serial>/keepalive``
            publishes. Must stay below the feed's ~60 s timeout.
        error_backoff_s: Pause after a transport error.
        snapshot_interval_s: Seconds between state snapshot log lines.
        health_path: Health JSON file path; empty disables it.
        modbus_enabled: Also poll the GX device over Modbus TCP.
        modbus_port: Modbus TCP port (default 502).
        vebus_unit_id: Modbus unit id of the VE.Bus inverter/charger.
        system_unit_id: Modbus unit id of the system service (default 100).
        modbus_poll_interval_s: Seconds between Modbus poll cycles.
        log_level: Root log level name.
    """

    gx_host: str
    gx_serial: str
    mqtt_port: int = 1883
    mqtt_client_id: str = "gx-edge"
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_keepalive_s: int = 30
    keepalive_interval_s: float = 10.0
    error_backoff_s: float = 5.0
    snapshot_interval_s: float = 3.0
    health_path: str = "/data/health.json"
    modbus_enabled: bool = False
    modbus_port: int = 502
    vebus_unit_id: int = 227
    system_unit_id: int = 100
    modbus_poll_interval_s: float = 5.0
    log_level: str = "INFO"

    @field_validator("gx_host")
    @classmethod
    def gx_host_must_be_set(cls, v: str) -> str:
        """Validate the GX host is not blank."""
        if not v.strip():
            raise ValueError("GX_HOST must not be empty")
        return v.strip()

    @field_validator("gx_serial")
    @classmethod
    def gx_serial_must_be_topic_safe(cls, v: str) -> str:
        """Validate the serial can be embedded in an MQTT topic.

        A serial containing ``/`` or a wildcard would subscribe to, or write
        into, another device's topic tree.
        """
        v = v.strip()
        if not v:
            raise ValueError("GX_SERIAL must not be empty")
        if _FORBIDDEN_SERIAL_CHARS & set(v):
            raise ValueError("GX_SERIAL must not contain '/', '+' or '#'")
        return v

    @field_validator("mqtt_port", "modbus_port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP ports are in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("mqtt_keepalive_s")
    @classmethod
    def mqtt_keepalive_must_be_reasonable(cls, v: int) -> int:
        if v < 5:
            raise ValueError("MQTT_KEEPALIVE_S must be >= 5")
        return v

    @field_validator("keepalive_interval_s")
    @classmethod
    def keepalive_interval_must_beat_feed_timeout(cls, v: float) -> float:
        """Validate the keepalive fires well inside the feed's 60 s timeout."""
        if v <= 0 or v >= 60:
            raise ValueError("KEEPALIVE_INTERVAL_S must be > 0 and < 60")
        return v

    @field_validator("error_backoff_s")
    @classmethod
    def error_backoff_must_be_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("ERROR_BACKOFF_S must be >= 0")
        return v

    @field_validator("snapshot_interval_s")
    @classmethod
    def snapshot_interval_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("SNAPSHOT_INTERVAL_S must be > 0")
        return v

    @field_validator("modbus_poll_interval_s")
    @classmethod
    def modbus_poll_interval_must_be_valid(cls, v: float) -> float:
        if v < 1:
            raise ValueError("MODBUS_POLL_INTERVAL_S must be >= 1")
        return v

    @field_validator("vebus_unit_id", "system_unit_id")
    @classmethod
    def unit_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus unit ID is in valid range (1-247)."""
        if v < 1 or v > 247:
            raise ValueError("Modbus unit id must be between 1 and 247")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate the log level is a standard logging level name."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"LOG_LEVEL must be a logging level name (got: '{v}')")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
