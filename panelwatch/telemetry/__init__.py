"""Resource snapshots and their persistent store."""

from .snapshot import ResourceLimits, ResourceSnapshot, parse_stats
from .store import TelemetrySnapshotStore

__all__ = ["ResourceLimits", "ResourceSnapshot", "TelemetrySnapshotStore", "parse_stats"]
