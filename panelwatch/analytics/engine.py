"""Analytics engine: read-side aggregation over stored snapshots.

All computations are pure functions over a list of snapshots (oldest first).
``AnalyticsEngine`` only adds the store query around them.

Availability is sample based: the share of snapshots reporting a non-zero
uptime. It approximates, and does not integrate, continuous uptime.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Sequence, TypeVar

import numpy as np

from ..telemetry.snapshot import ResourceSnapshot
from ..telemetry.store import TelemetrySnapshotStore
from ..utils.logging import get_logger

logger = get_logger("analytics.engine")

T = TypeVar("T")

BYTES_PER_MB = 1_000_000
MS_PER_HOUR = 3_600_000


class UsageTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    VOLATILE = "volatile"


class AnalyticsMetric(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NETWORK_RX = "network_rx"
    NETWORK_TX = "network_tx"
    UPTIME = "uptime"

    @property
    def unit(self) -> str:
        if self in (AnalyticsMetric.CPU, AnalyticsMetric.MEMORY, AnalyticsMetric.DISK):
            return "%"
        if self in (AnalyticsMetric.NETWORK_RX, AnalyticsMetric.NETWORK_TX):
            return "MB"
        return "Hr"


class AnalyticsTimeRange(str, Enum):
    HOUR_1 = "1H"
    HOURS_6 = "6H"
    HOURS_24 = "24H"
    DAYS_7 = "7D"
    DAYS_30 = "30D"

    @property
    def seconds(self) -> int:
        return {
            AnalyticsTimeRange.HOUR_1: 3600,
            AnalyticsTimeRange.HOURS_6: 3600 * 6,
            AnalyticsTimeRange.HOURS_24: 3600 * 24,
            AnalyticsTimeRange.DAYS_7: 3600 * 24 * 7,
            AnalyticsTimeRange.DAYS_30: 3600 * 24 * 30,
        }[self]

    def window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """(start, end) of this range ending at ``now``."""
        end = now or datetime.now(timezone.utc)
        return end - timedelta(seconds=self.seconds), end


@dataclass(frozen=True)
class TrendThresholds:
    """Tunable trend cut-offs. Defaults suit percent-scaled metrics."""

    min_points: int = 3
    volatility_ratio: float = 0.5
    slope: float = 0.5

    @classmethod
    def from_config(cls, config) -> "TrendThresholds":
        return cls(
            min_points=config.trend_min_points,
            volatility_ratio=config.trend_volatility_ratio,
            slope=config.trend_slope_threshold,
        )


@dataclass(frozen=True)
class UtilizationThresholds:
    underutilized_cpu: float = 10.0
    underutilized_memory: float = 20.0
    overallocated_cpu: float = 90.0
    overallocated_memory: float = 90.0


DEFAULT_TREND = TrendThresholds()
DEFAULT_UTILIZATION = UtilizationThresholds()


@dataclass(frozen=True)
class ChartDataPoint:
    timestamp: datetime
    value: float
    label: Optional[str] = None


@dataclass(frozen=True)
class AnalyticsSummary:
    entity_id: str
    period_start: datetime
    period_end: datetime
    sample_count: int

    avg_cpu: float
    avg_memory_percent: float
    avg_disk_percent: float
    uptime_availability: float

    peak_cpu: float
    peak_memory_percent: float
    peak_disk_percent: float

    cpu_trend: UsageTrend
    memory_trend: UsageTrend

    is_underutilized: bool
    is_overallocated: bool
    total_network_rx: int
    total_network_tx: int
    current_uptime_ms: int


# --- Primitive aggregates ---

def average(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def peak(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.max(np.asarray(values, dtype=float)))


def uptime_availability(snapshots: Sequence[ResourceSnapshot]) -> float:
    """Percent of samples with ``uptime_ms > 0``; 0 for an empty window."""
    if not snapshots:
        return 0.0
    up = sum(1 for s in snapshots if s.uptime_ms > 0)
    return up / len(snapshots) * 100


def classify_trend(values: Sequence[float], thresholds: TrendThresholds = DEFAULT_TREND) -> UsageTrend:
    """Classify a series by OLS slope against sample index and its spread.

    High variance wins over direction: a series whose population standard
    deviation exceeds ``volatility_ratio * mean`` is volatile whatever its
    slope.
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n < thresholds.min_points:
        return UsageTrend.STABLE

    x = np.arange(n, dtype=float)
    x_mean = x.mean()
    y_mean = y.mean()
    denominator = float(np.sum((x - x_mean) ** 2))
    if denominator == 0:
        return UsageTrend.STABLE
    slope = float(np.sum((x - x_mean) * (y - y_mean))) / denominator

    std_dev = float(y.std())
    if std_dev > thresholds.volatility_ratio * y_mean:
        return UsageTrend.VOLATILE
    if slope > thresholds.slope:
        return UsageTrend.INCREASING
    if slope < -thresholds.slope:
        return UsageTrend.DECREASING
    return UsageTrend.STABLE


def downsample(points: Sequence[T], budget: int = 60) -> list[T]:
    """Keep every ``stride``-th point, ``stride = max(1, len // budget)``.

    Fixed stride: spikes narrower than the stride can disappear. Display only;
    alert evaluation always reads raw snapshots.
    """
    if budget <= 0:
        raise ValueError("budget must be positive")
    stride = max(1, len(points) // budget)
    return list(points[::stride])


def is_underutilized(
    avg_cpu: float,
    avg_memory_percent: float,
    thresholds: UtilizationThresholds = DEFAULT_UTILIZATION,
) -> bool:
    return avg_cpu < thresholds.underutilized_cpu and avg_memory_percent < thresholds.underutilized_memory


def is_overallocated(
    peak_cpu: float,
    peak_memory_percent: float,
    thresholds: UtilizationThresholds = DEFAULT_UTILIZATION,
) -> bool:
    return peak_cpu > thresholds.overallocated_cpu or peak_memory_percent > thresholds.overallocated_memory


def metric_value(snapshot: ResourceSnapshot, metric: AnalyticsMetric) -> float:
    if metric is AnalyticsMetric.CPU:
        return snapshot.cpu_percent
    if metric is AnalyticsMetric.MEMORY:
        return snapshot.memory_percent
    if metric is AnalyticsMetric.DISK:
        return snapshot.disk_percent
    if metric is AnalyticsMetric.NETWORK_RX:
        return snapshot.network_rx_bytes / BYTES_PER_MB
    if metric is AnalyticsMetric.NETWORK_TX:
        return snapshot.network_tx_bytes / BYTES_PER_MB
    return snapshot.uptime_ms / MS_PER_HOUR


def chart_series(
    snapshots: Sequence[ResourceSnapshot],
    metric: AnalyticsMetric,
    budget: Optional[int] = None,
) -> list[ChartDataPoint]:
    """Chart points for ``metric``, downsampled when a budget is given."""
    points = [ChartDataPoint(timestamp=s.timestamp, value=metric_value(s, metric)) for s in snapshots]
    if budget is None:
        return points
    return downsample(points, budget)


def summarize_snapshots(
    snapshots: Sequence[ResourceSnapshot],
    entity_id: str,
    period_start: datetime,
    period_end: datetime,
    trend: TrendThresholds = DEFAULT_TREND,
    utilization: UtilizationThresholds = DEFAULT_UTILIZATION,
) -> Optional[AnalyticsSummary]:
    """Aggregate one window. Returns None when the window is empty."""
    if not snapshots:
        return None

    cpu = [s.cpu_percent for s in snapshots]
    memory = [s.memory_percent for s in snapshots]
    disk = [s.disk_percent for s in snapshots]

    avg_cpu = average(cpu)
    avg_memory = average(memory)
    peak_cpu = peak(cpu)
    peak_memory = peak(memory)

    return AnalyticsSummary(
        entity_id=entity_id,
        period_start=period_start,
        period_end=period_end,
        sample_count=len(snapshots),
        avg_cpu=avg_cpu,
        avg_memory_percent=avg_memory,
        avg_disk_percent=average(disk),
        uptime_availability=uptime_availability(snapshots),
        peak_cpu=peak_cpu,
        peak_memory_percent=peak_memory,
        peak_disk_percent=peak(disk),
        cpu_trend=classify_trend(cpu, trend),
        memory_trend=classify_trend(memory, trend),
        is_underutilized=is_underutilized(avg_cpu, avg_memory, utilization),
        is_overallocated=is_overallocated(peak_cpu, peak_memory, utilization),
        # Counters are cumulative, so the window total is the largest reading
        total_network_rx=max(s.network_rx_bytes for s in snapshots),
        total_network_tx=max(s.network_tx_bytes for s in snapshots),
        current_uptime_ms=snapshots[-1].uptime_ms,
    )


class AnalyticsEngine:
    """On-demand analytics for UI refreshes and reports."""

    def __init__(
        self,
        store: TelemetrySnapshotStore,
        trend: TrendThresholds = DEFAULT_TREND,
        utilization: UtilizationThresholds = DEFAULT_UTILIZATION,
        chart_budget: int = 60,
    ):
        self._store = store
        self._trend = trend
        self._utilization = utilization
        self._chart_budget = chart_budget

    @classmethod
    def from_config(cls, store: TelemetrySnapshotStore, config) -> "AnalyticsEngine":
        return cls(store, trend=TrendThresholds.from_config(config), chart_budget=config.chart_point_budget)

    async def summarize(self, entity_id: str, start: datetime, end: datetime) -> Optional[AnalyticsSummary]:
        snapshots = await self._store.query(entity_id, start, end)
        summary = summarize_snapshots(snapshots, entity_id, start, end, self._trend, self._utilization)
        logger.debug("analytics_summary", entity_id=entity_id, samples=len(snapshots))
        return summary

    async def summarize_range(
        self, entity_id: str, time_range: AnalyticsTimeRange, now: Optional[datetime] = None
    ) -> Optional[AnalyticsSummary]:
        start, end = time_range.window(now)
        return await self.summarize(entity_id, start, end)

    async def chart(
        self,
        entity_id: str,
        metric: AnalyticsMetric,
        start: datetime,
        end: datetime,
        budget: Optional[int] = None,
    ) -> list[ChartDataPoint]:
        snapshots = await self._store.query(entity_id, start, end)
        return chart_series(snapshots, metric, budget or self._chart_budget)
