"""Aggregation, trend classification and chart preparation."""

from .engine import (
    AnalyticsEngine,
    AnalyticsMetric,
    AnalyticsSummary,
    AnalyticsTimeRange,
    ChartDataPoint,
    TrendThresholds,
    UsageTrend,
    UtilizationThresholds,
)

__all__ = [
    "AnalyticsEngine",
    "AnalyticsMetric",
    "AnalyticsSummary",
    "AnalyticsTimeRange",
    "ChartDataPoint",
    "TrendThresholds",
    "UsageTrend",
    "UtilizationThresholds",
]
