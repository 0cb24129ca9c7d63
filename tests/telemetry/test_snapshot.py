"""Tests for stats parsing and snapshot derived values."""

import json
from datetime import datetime, timezone

import pytest

from panelwatch.exceptions import StatsParseError
from panelwatch.telemetry.snapshot import MIB, ResourceLimits, ResourceSnapshot, parse_stats


class TestParseStats:
    def test_parses_daemon_fields(self, stats_factory):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        snap = parse_stats(stats_factory(), "srv-1", now=now)

        assert snap.entity_id == "srv-1"
        assert snap.cpu_percent == 12.5
        assert snap.memory_used_bytes == 512 * MIB
        assert snap.memory_limit_bytes == 1024 * MIB
        assert snap.network_rx_bytes == 1500
        assert snap.network_tx_bytes == 2500
        assert snap.uptime_ms == 360000
        assert snap.power_state == "running"
        assert snap.timestamp == now
        assert snap.memory_percent == pytest.approx(50.0)

    def test_memory_limit_falls_back_to_panel_limit(self, stats_factory):
        raw = stats_factory(memory_limit_bytes=0)
        snap = parse_stats(raw, "srv-1", ResourceLimits(memory=2048))
        assert snap.memory_limit_bytes == 2048 * MIB
        assert snap.memory_percent == pytest.approx(25.0)

    def test_disk_limit_from_panel(self, stats_factory):
        snap = parse_stats(stats_factory(), "srv-1", ResourceLimits(disk=4096))
        assert snap.disk_limit_bytes == 4096 * MIB
        assert snap.disk_percent == pytest.approx(50.0)

    def test_missing_fields_default_to_zero(self):
        snap = parse_stats(json.dumps({}), "srv-1")
        assert snap.cpu_percent == 0.0
        assert snap.network_rx_bytes == 0
        assert snap.power_state == "offline"

    def test_non_finite_numbers_default_to_zero(self):
        raw = '{"cpu_absolute": NaN, "memory_bytes": Infinity, "network": {"rx_bytes": -Infinity}}'
        snap = parse_stats(raw, "srv-1")
        assert snap.cpu_percent == 0.0
        assert snap.memory_used_bytes == 0
        assert snap.network_rx_bytes == 0

    def test_not_json_raises(self):
        with pytest.raises(StatsParseError):
            parse_stats("not-json", "srv-1")

    def test_not_object_raises(self):
        with pytest.raises(StatsParseError):
            parse_stats("[1, 2, 3]", "srv-1")


class TestDerivedValues:
    def test_zero_limit_gives_zero_percent(self):
        snap = ResourceSnapshot(entity_id="srv-1", cpu_percent=0, memory_used_bytes=100, memory_limit_bytes=0)
        assert snap.memory_percent == 0.0
        assert snap.disk_percent == 0.0

    def test_unbounded_limits(self):
        limits = ResourceLimits(memory=0, disk=None)
        assert limits.memory_bytes is None
        assert limits.disk_bytes is None

    def test_offline(self):
        assert ResourceSnapshot(entity_id="srv-1", cpu_percent=0).is_offline

    def test_ids_are_unique(self):
        a = ResourceSnapshot(entity_id="srv-1", cpu_percent=0)
        b = ResourceSnapshot(entity_id="srv-1", cpu_percent=0)
        assert a.id != b.id

    def test_to_dict(self, snapshot_factory):
        data = snapshot_factory(memory_used=50, memory_limit=100).to_dict()
        assert data["memory_percent"] == 50.0
        assert isinstance(data["timestamp"], str)
