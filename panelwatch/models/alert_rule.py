"""Alert rule and per-entity alert settings models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AlertRuleRecord(Base):
    __tablename__ = "alert_rules"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    metric: Mapped[str] = mapped_column(String(20), nullable=False)  # cpu, memory, disk, network, offline
    condition: Mapped[str] = mapped_column(String(10), nullable=False)  # above, below
    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class AlertSettingsRecord(Base):
    __tablename__ = "alert_settings"

    entity_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    alerts_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status_alerts_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
