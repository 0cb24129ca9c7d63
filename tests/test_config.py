"""Tests for PanelwatchConfig validation."""

import pytest
from pydantic import ValidationError

from panelwatch.config import PanelwatchConfig


class TestConfig:
    def test_defaults(self):
        config = PanelwatchConfig()
        assert config.database_url.startswith("sqlite+aiosqlite")
        assert config.retention_snapshots_hours == 24
        assert config.chart_point_budget == 60

    def test_synchronous_is_normalised(self):
        assert PanelwatchConfig(db_synchronous="full").db_synchronous == "FULL"

    def test_invalid_synchronous(self):
        with pytest.raises(ValidationError):
            PanelwatchConfig(db_synchronous="sometimes")

    @pytest.mark.parametrize("field", ["retention_snapshots_hours", "chart_point_budget", "reconnect_max_delay"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            PanelwatchConfig(**{field: 0})

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("RETENTION_SNAPSHOTS_HOURS", "48")
        assert PanelwatchConfig().retention_snapshots_hours == 48

    def test_write_timeout_must_be_below_handler_timeout(self):
        with pytest.raises(ValidationError):
            PanelwatchConfig(event_handler_timeout=2.0, snapshot_write_timeout=2.0)
        config = PanelwatchConfig(event_handler_timeout=10.0, snapshot_write_timeout=8.0)
        assert config.snapshot_write_timeout == 8.0
