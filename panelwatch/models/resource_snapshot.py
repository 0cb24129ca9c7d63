"""Resource snapshot model for historical telemetry samples."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ResourceSnapshotRecord(Base):
    __tablename__ = "resource_snapshots"
    __table_args__ = (
        Index("ix_resource_snapshots_entity_timestamp", "entity_id", "timestamp"),
    )

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    # Naive UTC; the store attaches tzinfo on the way out
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    cpu_percent: Mapped[float] = mapped_column(Float, nullable=False)
    memory_used_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    memory_limit_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    disk_used_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    disk_limit_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    network_rx_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    network_tx_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    uptime_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    power_state: Mapped[str] = mapped_column(String(20), nullable=False, default="offline")
