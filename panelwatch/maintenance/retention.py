"""Data retention manager: periodic pruning of aged snapshots and alert history."""

import asyncio
from datetime import timedelta
from typing import Optional

from ..alerting.history import AlertHistoryStore
from ..exceptions import AlertStoreError, SnapshotStoreError
from ..modules.base_module import PipelineModule
from ..telemetry.store import TelemetrySnapshotStore


class RetentionManager(PipelineModule):
    """Deletes snapshots, and alert history when given, older than the horizon.

    Runs once on start and then every ``retention_interval_seconds``. A failed
    sweep is logged and recorded; the next one is still scheduled.
    """

    def __init__(
        self,
        store: TelemetrySnapshotStore,
        config,
        history: Optional[AlertHistoryStore] = None,
    ):
        super().__init__(name="retention")
        self._store = store
        self._history = history
        self._settings = config
        self._task: Optional[asyncio.Task] = None
        self._last_summary: Optional[dict] = None

    @property
    def horizon(self) -> timedelta:
        return timedelta(hours=getattr(self._settings, "retention_snapshots_hours", 24))

    async def run_cleanup(self) -> dict:
        """Run one retention sweep and return a summary of deleted rows.

        Storage failures propagate as ``SnapshotStoreError`` or
        ``AlertStoreError``.
        """
        hours = self.horizon.total_seconds() / 3600
        deleted = await self._store.prune(self.horizon)
        summary = {"resource_snapshots": deleted, "horizon_hours": hours}
        self.logger.info("retention_cleanup", table="resource_snapshots", deleted=deleted, horizon_hours=hours)
        if self._history is not None:
            events = await self._history.prune(self.horizon)
            summary["alert_events"] = events
            self.logger.info("retention_cleanup", table="alert_events", deleted=events, horizon_hours=hours)
        self._last_summary = summary
        self.heartbeat()
        return summary

    async def start(self) -> None:
        if self.running:
            return
        self._mark_started()
        self._task = asyncio.create_task(self._sweep_loop())
        self.logger.info("retention_started", interval=self._settings.retention_interval_seconds)

    async def stop(self) -> None:
        self.running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._mark_stopped()
        self.logger.info("retention_stopped")

    async def health_check(self) -> dict:
        return {
            "status": self.health_status,
            "details": {
                "horizon_hours": self.horizon.total_seconds() / 3600,
                "last_summary": self._last_summary,
                "errors": self.get_errors(),
            },
        }

    def get_last_summary(self) -> Optional[dict]:
        return self._last_summary

    async def _sweep_loop(self) -> None:
        while self.running:
            try:
                await self.run_cleanup()
                if self.health_status == "degraded":
                    self.health_status = "running"
            except (SnapshotStoreError, AlertStoreError) as e:
                self.record_error(f"prune: {e}", degrade=True)
                self.logger.warning("retention_cleanup_failed", error=str(e))
            await asyncio.sleep(self._settings.retention_interval_seconds)
