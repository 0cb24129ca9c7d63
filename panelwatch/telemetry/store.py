"""Telemetry snapshot store: durable per-entity time series.

Every snapshot is one row in ``resource_snapshots``. Writes are serialised
behind a single lock (SQLite allows one writer at a time); reads are not.
Storage failures surface as ``SnapshotStoreError``.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import SnapshotStoreError
from ..models.resource_snapshot import ResourceSnapshotRecord
from ..utils.logging import get_logger
from .snapshot import ResourceSnapshot

logger = get_logger("telemetry.store")


def _to_db_time(value: datetime) -> datetime:
    """Normalise to naive UTC. Naive input is taken to be UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _to_record(snapshot: ResourceSnapshot) -> ResourceSnapshotRecord:
    return ResourceSnapshotRecord(
        snapshot_id=snapshot.id,
        entity_id=snapshot.entity_id,
        timestamp=_to_db_time(snapshot.timestamp),
        cpu_percent=snapshot.cpu_percent,
        memory_used_bytes=snapshot.memory_used_bytes,
        memory_limit_bytes=snapshot.memory_limit_bytes,
        disk_used_bytes=snapshot.disk_used_bytes,
        disk_limit_bytes=snapshot.disk_limit_bytes,
        network_rx_bytes=snapshot.network_rx_bytes,
        network_tx_bytes=snapshot.network_tx_bytes,
        uptime_ms=snapshot.uptime_ms,
        power_state=snapshot.power_state,
    )


def _to_snapshot(record: ResourceSnapshotRecord) -> ResourceSnapshot:
    return ResourceSnapshot(
        id=record.snapshot_id,
        entity_id=record.entity_id,
        timestamp=_from_db_time(record.timestamp),
        cpu_percent=record.cpu_percent,
        memory_used_bytes=record.memory_used_bytes,
        memory_limit_bytes=record.memory_limit_bytes,
        disk_used_bytes=record.disk_used_bytes,
        disk_limit_bytes=record.disk_limit_bytes,
        network_rx_bytes=record.network_rx_bytes,
        network_tx_bytes=record.network_tx_bytes,
        uptime_ms=record.uptime_ms,
        power_state=record.power_state,
    )


class TelemetrySnapshotStore:
    """Append-only snapshot series with range queries and retention pruning."""

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = db_session_factory
        self._write_lock = asyncio.Lock()

    async def append(self, snapshot: ResourceSnapshot) -> None:
        """Persist one snapshot. Raises ``SnapshotStoreError`` on I/O failure."""
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    session.add(_to_record(snapshot))
                    await session.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error("snapshot_append_failed", entity_id=snapshot.entity_id, error=str(e))
                raise SnapshotStoreError(
                    f"Failed to append snapshot for {snapshot.entity_id}",
                    details={"entity_id": snapshot.entity_id, "snapshot_id": snapshot.id},
                ) from e

    async def query(self, entity_id: str, start: datetime, end: datetime) -> list[ResourceSnapshot]:
        """Snapshots of ``entity_id`` with ``start <= timestamp <= end``, oldest first."""
        stmt = (
            select(ResourceSnapshotRecord)
            .where(
                ResourceSnapshotRecord.entity_id == entity_id,
                ResourceSnapshotRecord.timestamp >= _to_db_time(start),
                ResourceSnapshotRecord.timestamp <= _to_db_time(end),
            )
            .order_by(ResourceSnapshotRecord.timestamp.asc(), ResourceSnapshotRecord.seq.asc())
        )
        try:
            async with self._session_factory() as session:
                records = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.error("snapshot_query_failed", entity_id=entity_id, error=str(e))
            raise SnapshotStoreError(
                f"Failed to query snapshots for {entity_id}",
                details={"entity_id": entity_id},
            ) from e
        return [_to_snapshot(r) for r in records]

    async def latest(self, entity_id: str) -> Optional[ResourceSnapshot]:
        stmt = (
            select(ResourceSnapshotRecord)
            .where(ResourceSnapshotRecord.entity_id == entity_id)
            .order_by(ResourceSnapshotRecord.timestamp.desc(), ResourceSnapshotRecord.seq.desc())
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                record = (await session.execute(stmt)).scalars().first()
        except (SQLAlchemyError, OSError) as e:
            logger.error("snapshot_latest_failed", entity_id=entity_id, error=str(e))
            raise SnapshotStoreError(
                f"Failed to read latest snapshot for {entity_id}",
                details={"entity_id": entity_id},
            ) from e
        return _to_snapshot(record) if record is not None else None

    async def prune(self, older_than: timedelta, now: Optional[datetime] = None) -> int:
        """Delete snapshots of every entity older than ``now - older_than``.

        Returns the number of deleted rows.
        """
        cutoff = (now or datetime.now(timezone.utc)) - older_than
        async with self._write_lock:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(
                        delete(ResourceSnapshotRecord).where(
                            ResourceSnapshotRecord.timestamp < _to_db_time(cutoff)
                        )
                    )
                    await session.commit()
            except (SQLAlchemyError, OSError) as e:
                logger.error("snapshot_prune_failed", cutoff=cutoff.isoformat(), error=str(e))
                raise SnapshotStoreError(
                    "Failed to prune snapshots",
                    details={"cutoff": cutoff.isoformat()},
                ) from e

        deleted = result.rowcount or 0
        logger.info("snapshot_prune", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    async def count(self, entity_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(ResourceSnapshotRecord)
        if entity_id is not None:
            stmt = stmt.where(ResourceSnapshotRecord.entity_id == entity_id)
        try:
            async with self._session_factory() as session:
                return int((await session.execute(stmt)).scalar_one())
        except (SQLAlchemyError, OSError) as e:
            raise SnapshotStoreError("Failed to count snapshots", details={"entity_id": entity_id}) from e

    async def entities(self) -> list[str]:
        """Distinct entity ids with at least one stored snapshot."""
        stmt = select(ResourceSnapshotRecord.entity_id).distinct().order_by(ResourceSnapshotRecord.entity_id)
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise SnapshotStoreError("Failed to list entities") from e
