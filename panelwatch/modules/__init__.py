"""Long-running pipeline modules."""

from .base_module import PipelineModule
from .telemetry_monitor import TelemetryMonitor

__all__ = ["PipelineModule", "TelemetryMonitor"]
