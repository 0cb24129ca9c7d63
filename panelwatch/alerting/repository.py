"""Persistence of per-entity alert rules and toggles."""

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import AlertStoreError
from ..models.alert_rule import AlertRuleRecord, AlertSettingsRecord
from ..utils.logging import get_logger
from .rules import AlertRule, AlertSettings

logger = get_logger("alerting.repository")


class AlertRuleRepository:
    """Loads and saves ``AlertSettings`` keyed by entity id.

    A save replaces the entity's rule rows wholesale; rule order is kept via
    the ``position`` column.
    """

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = db_session_factory

    async def load(self, entity_id: str) -> AlertSettings:
        """Stored settings, or defaults (no rules, both toggles on)."""
        try:
            async with self._session_factory() as session:
                settings_row = (
                    await session.execute(
                        select(AlertSettingsRecord).where(AlertSettingsRecord.entity_id == entity_id)
                    )
                ).scalar_one_or_none()
                rule_rows = (
                    await session.execute(
                        select(AlertRuleRecord)
                        .where(AlertRuleRecord.entity_id == entity_id)
                        .order_by(AlertRuleRecord.position.asc(), AlertRuleRecord.seq.asc())
                    )
                ).scalars().all()
        except SQLAlchemyError as e:
            logger.error("alert_settings_load_failed", entity_id=entity_id, error=str(e))
            raise AlertStoreError(f"Failed to load alert settings for {entity_id}") from e

        rules = [
            AlertRule(
                id=row.rule_id,
                metric=row.metric,
                condition=row.condition,
                threshold=row.threshold,
                enabled=row.enabled,
            )
            for row in rule_rows
        ]
        if settings_row is None:
            return AlertSettings(rules=rules)
        return AlertSettings(
            rules=rules,
            alerts_enabled=settings_row.alerts_enabled,
            status_alerts_enabled=settings_row.status_alerts_enabled,
        )

    async def save(self, entity_id: str, settings: AlertSettings) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(AlertRuleRecord).where(AlertRuleRecord.entity_id == entity_id))
                for position, rule in enumerate(settings.rules):
                    session.add(
                        AlertRuleRecord(
                            rule_id=rule.id,
                            entity_id=entity_id,
                            metric=rule.metric.value,
                            condition=rule.condition.value,
                            threshold=rule.threshold,
                            enabled=rule.enabled,
                            position=position,
                        )
                    )
                row = await session.get(AlertSettingsRecord, entity_id)
                if row is None:
                    session.add(
                        AlertSettingsRecord(
                            entity_id=entity_id,
                            alerts_enabled=settings.alerts_enabled,
                            status_alerts_enabled=settings.status_alerts_enabled,
                        )
                    )
                else:
                    row.alerts_enabled = settings.alerts_enabled
                    row.status_alerts_enabled = settings.status_alerts_enabled
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("alert_settings_save_failed", entity_id=entity_id, error=str(e))
            raise AlertStoreError(f"Failed to save alert settings for {entity_id}") from e
        logger.info("alert_settings_saved", entity_id=entity_id, rules=len(settings.rules))
