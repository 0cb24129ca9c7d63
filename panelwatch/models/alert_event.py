"""History of raised alerts."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AlertEventRecord(Base):
    __tablename__ = "alert_events"
    __table_args__ = (
        Index("ix_alert_events_entity_timestamp", "entity_id", "timestamp"),
    )

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    # Null for the built-in status alert and for rules deleted since
    rule_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    metric: Mapped[str] = mapped_column(String(20), nullable=False)  # cpu, memory, disk, network, offline, status
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    message: Mapped[str] = mapped_column(String(200), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
