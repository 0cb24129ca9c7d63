"""Lifecycle contract shared by the long-running pipeline pieces."""

import abc
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

from ..utils.logging import get_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineModule(abc.ABC):
    """Something with start/stop/health_check, a heartbeat and an error ring.

    ``health_status`` moves initialized -> running -> stopped, with
    ``degraded`` while running and failing. ``async with module:`` starts it
    on entry and stops it on exit.
    """

    def __init__(self, name: str, config: Optional[dict[str, Any]] = None):
        self.name = name
        self.config: dict[str, Any] = dict(config or {})
        self.logger = get_logger(f"module.{name}")
        self.running = False
        self.health_status = "initialized"
        self.started_at: Optional[datetime] = None
        self.last_heartbeat: Optional[datetime] = None
        self._errors: deque[str] = deque(maxlen=self.config.get("error_buffer_size", 20))

    @abc.abstractmethod
    async def start(self) -> None: ...

    @abc.abstractmethod
    async def stop(self) -> None: ...

    @abc.abstractmethod
    async def health_check(self) -> dict:
        """Return ``{"status": str, "details": dict}``."""

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _mark_started(self) -> None:
        self.running = True
        self.health_status = "running"
        self.started_at = self.last_heartbeat = _utcnow()

    def _mark_stopped(self) -> None:
        self.running = False
        self.health_status = "stopped"

    def heartbeat(self) -> None:
        self.last_heartbeat = _utcnow()

    def record_error(self, message: str, *, degrade: bool = False) -> None:
        """Keep ``message`` in the error ring; optionally mark the module degraded."""
        self._errors.append(message)
        if degrade and self.running:
            self.health_status = "degraded"

    def get_errors(self) -> list[str]:
        return list(self._errors)

    def get_status(self) -> dict:
        uptime = (_utcnow() - self.started_at).total_seconds() if self.running and self.started_at else 0.0
        return {
            "name": self.name,
            "running": self.running,
            "health_status": self.health_status,
            "uptime_seconds": round(uptime, 1),
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
            "error_count": len(self._errors),
        }
