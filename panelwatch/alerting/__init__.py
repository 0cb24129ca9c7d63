"""Threshold alert rules, their persistence, history and the active-alert manager."""

from .history import AlertEvent, AlertHistoryStore
from .manager import ACTIVE_ALERTS_EVENT, AlertManager
from .repository import AlertRuleRepository
from .rules import (
    AlertCondition,
    AlertMetric,
    AlertRule,
    AlertRuleEngine,
    AlertSettings,
    TriggeredAlert,
    evaluate,
    triggered_alerts,
)

__all__ = [
    "ACTIVE_ALERTS_EVENT",
    "AlertCondition",
    "AlertEvent",
    "AlertHistoryStore",
    "AlertManager",
    "AlertMetric",
    "AlertRule",
    "AlertRuleEngine",
    "AlertRuleRepository",
    "AlertSettings",
    "TriggeredAlert",
    "evaluate",
    "triggered_alerts",
]
