"""Resource snapshot value type and ``stats`` payload parsing."""

import json
import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..exceptions import StatsParseError

MIB = 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ResourceLimits:
    """Per-entity allocation as reported by the panel API.

    ``memory``, ``disk`` and ``swap`` are MiB, ``cpu`` is percent. ``None``
    means unbounded or unknown.
    """

    memory: Optional[int] = None
    disk: Optional[int] = None
    cpu: Optional[int] = None
    swap: Optional[int] = None

    @property
    def memory_bytes(self) -> Optional[int]:
        if self.memory is None or self.memory <= 0:
            return None
        return self.memory * MIB

    @property
    def disk_bytes(self) -> Optional[int]:
        if self.disk is None or self.disk <= 0:
            return None
        return self.disk * MIB


@dataclass(frozen=True)
class ResourceSnapshot:
    """One timestamped usage sample of an entity. Immutable."""

    entity_id: str
    cpu_percent: float
    memory_used_bytes: int = 0
    memory_limit_bytes: int = 0
    disk_used_bytes: int = 0
    disk_limit_bytes: int = 0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    uptime_ms: int = 0
    power_state: str = "offline"
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_id)

    @property
    def memory_percent(self) -> float:
        if self.memory_limit_bytes <= 0:
            return 0.0
        return self.memory_used_bytes / self.memory_limit_bytes * 100

    @property
    def disk_percent(self) -> float:
        if self.disk_limit_bytes <= 0:
            return 0.0
        return self.disk_used_bytes / self.disk_limit_bytes * 100

    @property
    def is_offline(self) -> bool:
        return self.power_state == "offline"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["memory_percent"] = self.memory_percent
        data["disk_percent"] = self.disk_percent
        return data


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_float(value) -> float:
    try:
        number = float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0
    # json.loads accepts Infinity and NaN
    return number if math.isfinite(number) else 0.0


def parse_stats(
    raw: str,
    entity_id: str,
    limits: Optional[ResourceLimits] = None,
    now: Optional[datetime] = None,
) -> ResourceSnapshot:
    """Build a snapshot from the JSON carried in a ``stats`` event.

    The daemon reports ``memory_limit_bytes`` itself on most versions; when it
    is missing the panel's MiB limit is used. Disk limits only come from the
    panel. Absent counters default to zero.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise StatsParseError(f"stats payload is not JSON: {e}", details={"entity_id": entity_id}) from e
    if not isinstance(payload, dict):
        raise StatsParseError("stats payload is not an object", details={"entity_id": entity_id})

    limits = limits or ResourceLimits()
    network = payload.get("network") or {}
    if not isinstance(network, dict):
        network = {}

    memory_limit = _as_int(payload.get("memory_limit_bytes"))
    if memory_limit <= 0:
        memory_limit = limits.memory_bytes or 0

    return ResourceSnapshot(
        entity_id=entity_id,
        timestamp=now or _utcnow(),
        cpu_percent=_as_float(payload.get("cpu_absolute")),
        memory_used_bytes=_as_int(payload.get("memory_bytes")),
        memory_limit_bytes=memory_limit,
        disk_used_bytes=_as_int(payload.get("disk_bytes")),
        disk_limit_bytes=limits.disk_bytes or 0,
        network_rx_bytes=_as_int(network.get("rx_bytes")),
        network_tx_bytes=_as_int(network.get("tx_bytes")),
        uptime_ms=_as_int(payload.get("uptime")),
        power_state=str(payload.get("state") or "offline"),
    )
