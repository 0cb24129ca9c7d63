"""Telemetry Monitor Module: consumes one entity's stream.

Subscribes to a stream client's event bus, turns ``stats`` events into
snapshots, runs alert evaluation on every sample and persists it. Console
lines are kept in a rolling buffer for display.
"""

import asyncio
from collections import deque
from typing import Optional

from ..alerting.manager import AlertManager
from ..exceptions import AlertStoreError, SnapshotStoreError, StatsParseError
from ..stream.client import StreamProtocolClient
from ..stream.events import StreamEvent, StreamEventKind
from ..telemetry.snapshot import ResourceLimits, ResourceSnapshot, parse_stats
from ..telemetry.store import TelemetrySnapshotStore
from .base_module import PipelineModule


class TelemetryMonitor(PipelineModule):
    """Bridges a stream client to the snapshot store and the alert manager."""

    def __init__(
        self,
        entity_id: str,
        client: StreamProtocolClient,
        store: TelemetrySnapshotStore,
        alert_manager: AlertManager,
        limits: Optional[ResourceLimits] = None,
        config: dict | None = None,
    ):
        super().__init__(name=f"telemetry_monitor.{entity_id}", config=config)

        self.entity_id = entity_id
        self._client = client
        self._store = store
        self._alert_manager = alert_manager
        self._limits = limits or ResourceLimits()
        self._write_timeout = float(self.config.get("snapshot_write_timeout", 3.0))

        # Rolling console history; the daemon backlog replay lands here too
        self._console: deque[str] = deque(maxlen=self.config.get("console_buffer_size", 500))
        self._current: Optional[ResourceSnapshot] = None
        self._power_state: Optional[str] = None
        self._connection_status = "offline"
        self._snapshots_ingested = 0
        self._handlers = {
            StreamEventKind.STATS.value: self._on_stats,
            StreamEventKind.STATUS.value: self._on_status,
            StreamEventKind.CONSOLE_OUTPUT.value: self._on_console,
            StreamEventKind.INSTALL_OUTPUT.value: self._on_console,
            StreamEventKind.DAEMON_ERROR.value: self._on_daemon_error,
            StreamEventKind.CONNECTED.value: self._on_connected,
            StreamEventKind.DISCONNECTED.value: self._on_disconnected,
        }

    async def start(self) -> None:
        for event_type, handler in self._handlers.items():
            self._client.bus.subscribe(event_type, handler)
        self._mark_started()
        self.logger.info("telemetry_monitor_started", entity_id=self.entity_id)

    async def stop(self) -> None:
        for event_type, handler in self._handlers.items():
            self._client.bus.unsubscribe(event_type, handler)
        self._mark_stopped()
        self.logger.info("telemetry_monitor_stopped", entity_id=self.entity_id)

    async def health_check(self) -> dict:
        self.heartbeat()
        return {
            "status": self.health_status,
            "details": {
                "entity_id": self.entity_id,
                "connection": self._connection_status,
                "power_state": self._power_state,
                "snapshots": self._snapshots_ingested,
                "console_lines": len(self._console),
                "active_alerts": len(self._alert_manager.get_active_alerts(self.entity_id)),
                "errors": self.get_errors(),
            },
        }

    def set_limits(self, limits: ResourceLimits) -> None:
        self._limits = limits

    # --- Event handlers ---

    async def _on_stats(self, event_type: str, event: StreamEvent) -> None:
        try:
            snapshot = parse_stats(event.data or "", self.entity_id, self._limits)
        except StatsParseError as e:
            self.record_error(f"stats_parse: {e}")
            self.logger.warning("stats_parse_failed", entity_id=self.entity_id, error=str(e))
            return

        self._current = snapshot
        self._power_state = snapshot.power_state

        # Alerts first: a slow store must not hold back evaluation
        try:
            await self._alert_manager.check_snapshot(snapshot, self._limits)
        except AlertStoreError as e:
            self.record_error(f"alerts: {e}")
            self.logger.warning("alert_evaluation_failed", entity_id=self.entity_id, error=str(e))

        try:
            await asyncio.wait_for(self._store.append(snapshot), timeout=self._write_timeout)
            self._snapshots_ingested += 1
        except asyncio.TimeoutError:
            self.record_error(f"store: append timed out after {self._write_timeout}s", degrade=True)
            self.logger.warning("snapshot_persist_timeout", entity_id=self.entity_id, timeout=self._write_timeout)
        except SnapshotStoreError as e:
            self.record_error(f"store: {e}", degrade=True)
            self.logger.warning("snapshot_persist_failed", entity_id=self.entity_id, error=str(e))
        self.heartbeat()

    async def _on_status(self, event_type: str, event: StreamEvent) -> None:
        self._power_state = event.data
        self.logger.info("power_state_changed", entity_id=self.entity_id, state=event.data)

    async def _on_console(self, event_type: str, event: StreamEvent) -> None:
        self._console.append(event.data or "")

    async def _on_daemon_error(self, event_type: str, event: StreamEvent) -> None:
        self.record_error(f"daemon: {event.data}")
        self._console.append(event.data or "")
        self.logger.warning("daemon_error", entity_id=self.entity_id, error=event.data)

    async def _on_connected(self, event_type: str, event: StreamEvent) -> None:
        self._connection_status = "online"

    async def _on_disconnected(self, event_type: str, event: StreamEvent) -> None:
        self._connection_status = "offline"

    # --- Public API ---

    @property
    def connection_status(self) -> str:
        return self._connection_status

    @property
    def power_state(self) -> Optional[str]:
        return self._power_state

    def get_current(self) -> Optional[ResourceSnapshot]:
        return self._current

    def get_console_lines(self, limit: int = 100) -> list[str]:
        lines = list(self._console)
        return lines[-limit:]
