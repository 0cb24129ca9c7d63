"""Alert history: one row per raised alert, newest first on the way out."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import AlertStoreError
from ..models.alert_event import AlertEventRecord
from ..utils.logging import get_logger
from .rules import TriggeredAlert

logger = get_logger("alerting.history")


@dataclass(frozen=True)
class AlertEvent:
    entity_id: str
    metric: str
    message: str
    timestamp: datetime
    rule_id: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_triggered(cls, entity_id: str, alert: TriggeredAlert, timestamp: datetime) -> "AlertEvent":
        return cls(
            entity_id=entity_id,
            metric=alert.metric,
            message=alert.message,
            timestamp=timestamp,
            rule_id=alert.rule.id if alert.rule is not None else None,
            value=alert.value,
            threshold=alert.threshold,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "rule_id": self.rule_id,
            "metric": self.metric,
            "value": self.value,
            "threshold": self.threshold,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AlertHistoryStore:
    """Durable log of raised alerts. Failures surface as ``AlertStoreError``."""

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = db_session_factory

    async def record(self, events: Iterable[AlertEvent]) -> int:
        rows = [
            AlertEventRecord(
                event_id=e.id,
                rule_id=e.rule_id,
                entity_id=e.entity_id,
                metric=e.metric,
                value=e.value,
                threshold=e.threshold,
                message=e.message,
                timestamp=_naive_utc(e.timestamp),
            )
            for e in events
        ]
        if not rows:
            return 0
        try:
            async with self._session_factory() as session:
                session.add_all(rows)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("alert_history_write_failed", entity_id=rows[0].entity_id, error=str(e))
            raise AlertStoreError(
                f"Failed to record alert history for {rows[0].entity_id}",
                details={"entity_id": rows[0].entity_id, "events": len(rows)},
            ) from e
        return len(rows)

    async def history(self, entity_id: str, limit: int = 50) -> list[AlertEvent]:
        """Most recent ``limit`` events of ``entity_id``, newest first."""
        stmt = (
            select(AlertEventRecord)
            .where(AlertEventRecord.entity_id == entity_id)
            .order_by(AlertEventRecord.timestamp.desc(), AlertEventRecord.seq.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                records = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.error("alert_history_query_failed", entity_id=entity_id, error=str(e))
            raise AlertStoreError(f"Failed to read alert history for {entity_id}") from e
        return [
            AlertEvent(
                id=r.event_id,
                entity_id=r.entity_id,
                rule_id=r.rule_id,
                metric=r.metric,
                value=r.value,
                threshold=r.threshold,
                message=r.message,
                timestamp=r.timestamp.replace(tzinfo=timezone.utc),
            )
            for r in records
        ]

    async def prune(self, older_than: timedelta, now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - older_than
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(AlertEventRecord).where(AlertEventRecord.timestamp < _naive_utc(cutoff))
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("alert_history_prune_failed", cutoff=cutoff.isoformat(), error=str(e))
            raise AlertStoreError("Failed to prune alert history", details={"cutoff": cutoff.isoformat()}) from e
        return result.rowcount or 0
