"""Alert manager: per-entity rule sets and the published active alert set.

Each evaluation replaces the entity's active set wholesale and publishes it
on the event bus as ``active_alerts``. Alerts that were not active on the
previous evaluation are additionally written to the alert history and pushed
to the configured webhook.
"""

import asyncio
import copy
from datetime import datetime, timezone
from typing import Callable, Optional

from ..exceptions import AlertStoreError
from ..notifications.webhook import WebhookSender
from ..telemetry.snapshot import ResourceLimits, ResourceSnapshot
from ..utils.event_bus import EventBus
from ..utils.logging import get_logger
from .history import AlertEvent, AlertHistoryStore
from .repository import AlertRuleRepository
from .rules import AlertRule, AlertRuleEngine, AlertSettings, TriggeredAlert

logger = get_logger("alerting.manager")

ACTIVE_ALERTS_EVENT = "active_alerts"


class AlertManager:
    """Owns alert settings per entity, evaluates snapshots, publishes results."""

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        repository: Optional[AlertRuleRepository] = None,
        webhook_url: Optional[str] = None,
        webhook_sender: Optional[WebhookSender] = None,
        engine: Optional[AlertRuleEngine] = None,
        history: Optional[AlertHistoryStore] = None,
    ):
        self._bus = bus
        self._repository = repository
        self._webhook_url = webhook_url
        self._webhook_sender = webhook_sender or WebhookSender()
        self._engine = engine or AlertRuleEngine()
        self._history = history
        self._settings: dict[str, AlertSettings] = {}
        self._limits: dict[str, ResourceLimits] = {}
        self._active: dict[str, list[str]] = {}
        self._deliveries: set[asyncio.Task] = set()

    # --- Settings ---

    async def load(self, entity_id: str) -> AlertSettings:
        """Settings for ``entity_id``, read from the repository once and cached.

        Raises ``AlertStoreError`` when the repository cannot be read.
        """
        settings = self._settings.get(entity_id)
        if settings is None:
            if self._repository is not None:
                settings = await self._repository.load(entity_id)
            else:
                settings = AlertSettings()
            self._settings[entity_id] = settings
        return settings

    async def _change(self, entity_id: str, edit: Callable[[AlertSettings], bool]) -> bool:
        """Apply ``edit`` to a copy, persist it, then swap it into the cache.

        ``edit`` returns False when there is nothing to change. A failed save
        leaves the cached settings untouched.
        """
        draft = copy.deepcopy(await self.load(entity_id))
        if not edit(draft):
            return False
        if self._repository is not None:
            await self._repository.save(entity_id, draft)
        self._settings[entity_id] = draft
        return True

    async def add_rule(self, entity_id: str, rule: AlertRule) -> AlertRule:
        def edit(settings: AlertSettings) -> bool:
            settings.rules.append(copy.deepcopy(rule))
            return True

        await self._change(entity_id, edit)
        logger.info("alert_rule_added", entity_id=entity_id, rule_id=rule.id, rule=rule.describe())
        return rule

    async def update_rule(self, entity_id: str, rule: AlertRule) -> bool:
        def edit(settings: AlertSettings) -> bool:
            for index, existing in enumerate(settings.rules):
                if existing.id == rule.id:
                    settings.rules[index] = copy.deepcopy(rule)
                    return True
            return False

        return await self._change(entity_id, edit)

    async def set_rule_enabled(self, entity_id: str, rule_id: str, enabled: bool) -> bool:
        def edit(settings: AlertSettings) -> bool:
            for rule in settings.rules:
                if rule.id == rule_id:
                    rule.enabled = enabled
                    return True
            return False

        return await self._change(entity_id, edit)

    async def delete_rule(self, entity_id: str, rule_id: str) -> bool:
        def edit(settings: AlertSettings) -> bool:
            remaining = [r for r in settings.rules if r.id != rule_id]
            if len(remaining) == len(settings.rules):
                return False
            settings.rules = remaining
            return True

        deleted = await self._change(entity_id, edit)
        if deleted:
            logger.info("alert_rule_deleted", entity_id=entity_id, rule_id=rule_id)
        return deleted

    async def set_alerts_enabled(self, entity_id: str, enabled: bool) -> None:
        def edit(settings: AlertSettings) -> bool:
            settings.alerts_enabled = enabled
            return True

        await self._change(entity_id, edit)

    async def set_status_alerts_enabled(self, entity_id: str, enabled: bool) -> None:
        def edit(settings: AlertSettings) -> bool:
            settings.status_alerts_enabled = enabled
            return True

        await self._change(entity_id, edit)

    def set_limits(self, entity_id: str, limits: ResourceLimits) -> None:
        self._limits[entity_id] = limits

    # --- Evaluation ---

    async def _settings_for_evaluation(self, entity_id: str) -> AlertSettings:
        try:
            return await self.load(entity_id)
        except AlertStoreError as e:
            # Not cached: the next evaluation retries the repository
            logger.error("alert_settings_unavailable", entity_id=entity_id, error=str(e))
            return AlertSettings()

    async def check_snapshot(
        self,
        snapshot: ResourceSnapshot,
        limits: Optional[ResourceLimits] = None,
    ) -> list[str]:
        """Evaluate ``snapshot`` and replace the entity's active alert set.

        Never raises on storage trouble: unreadable settings evaluate as the
        defaults. History rows and webhooks for newly raised alerts are
        written by a background task; ``drain()`` waits for it.
        """
        entity_id = snapshot.entity_id
        settings = await self._settings_for_evaluation(entity_id)
        if limits is None:
            limits = self._limits.get(entity_id)

        if settings.alerts_enabled:
            triggered = self._engine.triggered(
                settings.rules,
                snapshot,
                limits,
                status_alerts_enabled=settings.status_alerts_enabled,
            )
        else:
            triggered = []
        active = [alert.message for alert in triggered]

        previous = self._active.get(entity_id, [])
        self._active[entity_id] = active

        if self._bus is not None:
            self._bus.publish(ACTIVE_ALERTS_EVENT, {"entity_id": entity_id, "alerts": list(active)})

        raised = [alert for alert in triggered if alert.message not in previous]
        for alert in raised:
            logger.warning("alert_raised", entity_id=entity_id, alert=alert.message)
        for message in previous:
            if message not in active:
                logger.info("alert_cleared", entity_id=entity_id, alert=message)

        if raised:
            self._dispatch(entity_id, raised, snapshot)

        return active

    async def history(self, entity_id: str, limit: int = 50) -> list[AlertEvent]:
        """Raised alerts of ``entity_id``, newest first. Empty without a history store."""
        if self._history is None:
            return []
        return await self._history.history(entity_id, limit)

    def get_active_alerts(self, entity_id: str) -> list[str]:
        return list(self._active.get(entity_id, []))

    def clear_active_alerts(self, entity_id: str) -> None:
        self._active.pop(entity_id, None)
        if self._bus is not None:
            self._bus.publish(ACTIVE_ALERTS_EVENT, {"entity_id": entity_id, "alerts": []})

    def _dispatch(self, entity_id: str, raised: list[TriggeredAlert], snapshot: ResourceSnapshot) -> None:
        if self._history is None and not self._webhook_url:
            return
        task = asyncio.create_task(self._deliver(entity_id, raised, snapshot))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def drain(self) -> None:
        """Wait for pending history writes and webhook deliveries."""
        pending = set(self._deliveries)
        while pending:
            await asyncio.wait(pending)
            pending = {task for task in self._deliveries if not task.done()}

    async def _deliver(self, entity_id: str, raised: list[TriggeredAlert], snapshot: ResourceSnapshot) -> None:
        await self._record_history(entity_id, raised, snapshot)
        for alert in raised:
            await self._send_webhook(entity_id, alert.message, snapshot)

    async def _record_history(
        self,
        entity_id: str,
        raised: list[TriggeredAlert],
        snapshot: ResourceSnapshot,
    ) -> None:
        if self._history is None:
            return
        events = [AlertEvent.from_triggered(entity_id, alert, snapshot.timestamp) for alert in raised]
        try:
            await self._history.record(events)
        except AlertStoreError as e:
            logger.error("alert_history_unavailable", entity_id=entity_id, error=str(e))

    async def _send_webhook(self, entity_id: str, alert: str, snapshot: ResourceSnapshot) -> None:
        if not self._webhook_url:
            return
        payload = {
            "event_type": "alert_raised",
            "entity_id": entity_id,
            "title": alert,
            "description": (
                f"CPU {snapshot.cpu_percent:.0f}%, memory {snapshot.memory_percent:.0f}%, "
                f"state {snapshot.power_state}"
            ),
            "severity": "high",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self._webhook_sender.send(self._webhook_url, payload)
