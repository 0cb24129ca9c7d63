"""Shared test fixtures."""

import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from panelwatch.models.base import Base
from panelwatch.telemetry.snapshot import ResourceSnapshot

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_snapshot(
    entity_id="srv-1",
    cpu=10.0,
    memory_used=0,
    memory_limit=0,
    disk_used=0,
    disk_limit=0,
    rx=0,
    tx=0,
    uptime=1000,
    state="running",
    minutes=0,
):
    """Build a snapshot ``minutes`` after BASE_TIME."""
    return ResourceSnapshot(
        entity_id=entity_id,
        cpu_percent=cpu,
        memory_used_bytes=memory_used,
        memory_limit_bytes=memory_limit,
        disk_used_bytes=disk_used,
        disk_limit_bytes=disk_limit,
        network_rx_bytes=rx,
        network_tx_bytes=tx,
        uptime_ms=uptime,
        power_state=state,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )


def stats_payload(**overrides) -> str:
    """A daemon ``stats`` argument as it appears on the wire."""
    payload = {
        "cpu_absolute": 12.5,
        "memory_bytes": 512 * 1024 * 1024,
        "memory_limit_bytes": 1024 * 1024 * 1024,
        "disk_bytes": 2 * 1024 * 1024 * 1024,
        "network": {"rx_bytes": 1500, "tx_bytes": 2500},
        "state": "running",
        "uptime": 360000,
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def stats_factory():
    return stats_payload


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite shared across sessions via StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
