"""SQLAlchemy models package."""

from .base import Base
from .resource_snapshot import ResourceSnapshotRecord
from .alert_rule import AlertRuleRecord, AlertSettingsRecord
from .alert_event import AlertEventRecord

__all__ = [
    "Base",
    "ResourceSnapshotRecord",
    "AlertRuleRecord",
    "AlertSettingsRecord",
    "AlertEventRecord",
]
