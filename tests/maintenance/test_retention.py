"""Tests for RetentionManager: automated cleanup of aged snapshots."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from panelwatch.alerting.history import AlertEvent, AlertHistoryStore
from panelwatch.exceptions import SnapshotStoreError
from panelwatch.maintenance.retention import RetentionManager
from panelwatch.telemetry.store import TelemetrySnapshotStore


def _make_config(snapshot_hours=24, interval=86400):
    """Create a mock config with retention settings."""
    config = MagicMock()
    config.retention_snapshots_hours = snapshot_hours
    config.retention_interval_seconds = interval
    return config


class TestRunCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_uses_configured_horizon(self):
        store = MagicMock()
        store.prune = AsyncMock(return_value=4)
        manager = RetentionManager(store, _make_config(snapshot_hours=6))

        summary = await manager.run_cleanup()

        store.prune.assert_awaited_once_with(timedelta(hours=6))
        assert summary == {"resource_snapshots": 4, "horizon_hours": 6.0}
        assert manager.get_last_summary() == summary

    @pytest.mark.asyncio
    async def test_cleanup_against_database(self, session_factory, snapshot_factory):
        store = TelemetrySnapshotStore(session_factory)
        # BASE_TIME is in the past relative to the wall clock
        await store.append(snapshot_factory())
        manager = RetentionManager(store, _make_config(snapshot_hours=1))

        summary = await manager.run_cleanup()

        assert summary["resource_snapshots"] == 1
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_cleanup_error_propagates(self):
        store = MagicMock()
        store.prune = AsyncMock(side_effect=SnapshotStoreError("locked"))
        manager = RetentionManager(store, _make_config())

        with pytest.raises(SnapshotStoreError):
            await manager.run_cleanup()


    @pytest.mark.asyncio
    async def test_cleanup_prunes_alert_history(self, session_factory, base_time):
        history = AlertHistoryStore(session_factory)
        await history.record(
            [AlertEvent(entity_id="srv-1", metric="status", message="Server is offline", timestamp=base_time)]
        )
        store = MagicMock()
        store.prune = AsyncMock(return_value=0)
        manager = RetentionManager(store, _make_config(snapshot_hours=1), history=history)

        summary = await manager.run_cleanup()

        assert summary == {"resource_snapshots": 0, "horizon_hours": 1.0, "alert_events": 1}
        assert await history.history("srv-1") == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_loop_runs_immediately_and_survives_errors(self):
        store = MagicMock()
        store.prune = AsyncMock(side_effect=SnapshotStoreError("locked"))
        manager = RetentionManager(store, _make_config(interval=3600))

        await manager.start()
        await asyncio.sleep(0.05)
        await manager.stop()

        store.prune.assert_awaited_once()
        assert manager.get_last_summary() is None

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        manager = RetentionManager(MagicMock(), _make_config())
        await manager.stop()

    @pytest.mark.asyncio
    async def test_failed_sweep_degrades_health(self):
        store = MagicMock()
        store.prune = AsyncMock(side_effect=SnapshotStoreError("locked"))
        manager = RetentionManager(store, _make_config(interval=3600))

        await manager.start()
        await asyncio.sleep(0.05)
        health = await manager.health_check()
        await manager.stop()

        assert health["status"] == "degraded"
        assert health["details"]["errors"] == ["prune: locked"]
        assert manager.health_status == "stopped"
