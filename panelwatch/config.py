"""panelwatch configuration system using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PanelwatchConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "PANELWATCH"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./panelwatch.db"
    db_wal_mode: bool = True
    db_busy_timeout: int = 5000  # milliseconds
    db_synchronous: str = "NORMAL"

    # Retention
    retention_snapshots_hours: int = 24
    retention_interval_seconds: int = 86400  # one sweep per day

    # Event bus
    event_bus_queue_size: int = 10000
    event_handler_timeout: float = 5.0  # seconds per subscriber call

    # Stream session (reconnect policy lives with the caller, not the client)
    reconnect_initial_delay: float = 1.0
    reconnect_max_delay: float = 60.0
    console_buffer_size: int = 500
    # Must stay below event_handler_timeout
    snapshot_write_timeout: float = 3.0

    # Analytics
    trend_min_points: int = 3
    trend_volatility_ratio: float = 0.5
    trend_slope_threshold: float = 0.5
    chart_point_budget: int = 60

    # Alerting
    alert_webhook_url: Optional[str] = None

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator(
        "retention_snapshots_hours",
        "retention_interval_seconds",
        "chart_point_budget",
        "event_bus_queue_size",
        "console_buffer_size",
        "reconnect_initial_delay",
        "reconnect_max_delay",
        "event_handler_timeout",
        "snapshot_write_timeout",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("value must be greater than zero")
        return v

    @model_validator(mode="after")
    def validate_write_timeout(self):
        if self.snapshot_write_timeout >= self.event_handler_timeout:
            raise ValueError("snapshot_write_timeout must be below event_handler_timeout")
        return self

    @field_validator("db_synchronous")
    @classmethod
    def validate_synchronous(cls, v: str) -> str:
        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if v.upper() not in allowed:
            raise ValueError(f"db_synchronous must be one of {allowed}")
        return v.upper()

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent.parent


def get_config() -> PanelwatchConfig:
    """Factory function to create config instance."""
    return PanelwatchConfig()
