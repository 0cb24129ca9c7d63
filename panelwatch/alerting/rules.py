"""Alert rule evaluation against the latest snapshot.

Evaluation is a pure function of (rules, snapshot, limits): nothing is
remembered between calls and the result is the complete set of alerts that
are true right now.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from ..telemetry.snapshot import ResourceLimits, ResourceSnapshot

BYTES_PER_MB = 1_000_000

# Power states that raise the built-in status alert
STATUS_ALERTS = {
    "offline": "Server is offline",
    "stopping": "Server is stopping",
}


class AlertMetric(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NETWORK = "network"
    OFFLINE = "offline"

    @property
    def display_name(self) -> str:
        return {
            AlertMetric.CPU: "CPU",
            AlertMetric.MEMORY: "Memory",
            AlertMetric.DISK: "Disk",
            AlertMetric.NETWORK: "Network",
            AlertMetric.OFFLINE: "Offline",
        }[self]

    @property
    def unit(self) -> str:
        if self is AlertMetric.NETWORK:
            return "MB/s"
        if self is AlertMetric.OFFLINE:
            return ""
        return "%"


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"

    @property
    def symbol(self) -> str:
        return ">" if self is AlertCondition.ABOVE else "<"


@dataclass
class AlertRule:
    """A user-defined threshold rule."""

    metric: AlertMetric
    condition: AlertCondition = AlertCondition.ABOVE
    threshold: float = 90.0
    enabled: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        self.metric = AlertMetric(self.metric)
        self.condition = AlertCondition(self.condition)
        self.threshold = float(self.threshold)

    def describe(self) -> str:
        if self.metric is AlertMetric.OFFLINE:
            return "Server offline" if self.condition is AlertCondition.ABOVE else "Server online"
        return f"{self.metric.display_name} {self.condition.value} {self.threshold:g}{self.metric.unit}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "metric": self.metric.value,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlertRule":
        return cls(
            id=data["id"],
            metric=data["metric"],
            condition=data.get("condition", AlertCondition.ABOVE),
            threshold=data.get("threshold", 90.0),
            enabled=data.get("enabled", True),
        )


@dataclass
class AlertSettings:
    """Everything persisted per entity: the rules plus two global toggles."""

    rules: list[AlertRule] = field(default_factory=list)
    alerts_enabled: bool = True
    status_alerts_enabled: bool = True


def _percent(used: int, limit_bytes: Optional[int]) -> Optional[float]:
    if limit_bytes is None or limit_bytes <= 0:
        return None
    return used / limit_bytes * 100


def metric_value(
    metric: AlertMetric,
    snapshot: ResourceSnapshot,
    limits: Optional[ResourceLimits] = None,
) -> Optional[float]:
    """Current value of ``metric``, or None when it cannot be computed.

    Memory and disk need a positive limit; without one the metric is
    unavailable. Network is cumulative rx+tx in MB, not a rate.
    """
    limits = limits or ResourceLimits()
    if metric is AlertMetric.CPU:
        return snapshot.cpu_percent
    if metric is AlertMetric.MEMORY:
        return _percent(snapshot.memory_used_bytes, limits.memory_bytes)
    if metric is AlertMetric.DISK:
        return _percent(snapshot.disk_used_bytes, limits.disk_bytes)
    if metric is AlertMetric.NETWORK:
        return (snapshot.network_rx_bytes + snapshot.network_tx_bytes) / BYTES_PER_MB
    return 1.0 if snapshot.power_state == "offline" else 0.0


def rule_triggered(
    rule: AlertRule,
    snapshot: ResourceSnapshot,
    limits: Optional[ResourceLimits] = None,
) -> bool:
    """Strict comparison of the metric against the threshold.

    Disabled rules and rules whose metric is unavailable never trigger.
    """
    if not rule.enabled:
        return False
    value = metric_value(rule.metric, snapshot, limits)
    if value is None:
        return False
    if rule.condition is AlertCondition.ABOVE:
        return value > rule.threshold
    return value < rule.threshold


def status_alert(snapshot: ResourceSnapshot, enabled: bool = True) -> Optional[str]:
    """Built-in power-state alert, independent of user rules."""
    if not enabled:
        return None
    return STATUS_ALERTS.get(snapshot.power_state)


@dataclass(frozen=True)
class TriggeredAlert:
    """One active alert with what caused it. ``rule`` is None for the status alert."""

    message: str
    metric: str
    rule: Optional[AlertRule] = None
    value: Optional[float] = None

    @property
    def threshold(self) -> Optional[float]:
        return self.rule.threshold if self.rule is not None else None


def triggered_alerts(
    rules: Iterable[AlertRule],
    snapshot: ResourceSnapshot,
    limits: Optional[ResourceLimits] = None,
    *,
    status_alerts_enabled: bool = True,
) -> list[TriggeredAlert]:
    """Like :func:`evaluate`, keeping the rule and metric value of each alert."""
    active: list[TriggeredAlert] = []
    status = status_alert(snapshot, status_alerts_enabled)
    if status:
        active.append(TriggeredAlert(message=status, metric="status"))
    for rule in rules:
        if rule_triggered(rule, snapshot, limits):
            active.append(
                TriggeredAlert(
                    message=rule.describe(),
                    metric=rule.metric.value,
                    rule=rule,
                    value=metric_value(rule.metric, snapshot, limits),
                )
            )
    return active


def evaluate(
    rules: Iterable[AlertRule],
    snapshot: ResourceSnapshot,
    limits: Optional[ResourceLimits] = None,
    *,
    status_alerts_enabled: bool = True,
) -> list[str]:
    """Active alert descriptions: status alert first, then triggered rules."""
    return [
        alert.message
        for alert in triggered_alerts(rules, snapshot, limits, status_alerts_enabled=status_alerts_enabled)
    ]


class AlertRuleEngine:
    """Object wrapper around :func:`evaluate` for injection into managers."""

    def evaluate(
        self,
        rules: Iterable[AlertRule],
        snapshot: ResourceSnapshot,
        limits: Optional[ResourceLimits] = None,
        *,
        status_alerts_enabled: bool = True,
    ) -> list[str]:
        return evaluate(rules, snapshot, limits, status_alerts_enabled=status_alerts_enabled)

    def triggered(
        self,
        rules: Iterable[AlertRule],
        snapshot: ResourceSnapshot,
        limits: Optional[ResourceLimits] = None,
        *,
        status_alerts_enabled: bool = True,
    ) -> list[TriggeredAlert]:
        return triggered_alerts(rules, snapshot, limits, status_alerts_enabled=status_alerts_enabled)
