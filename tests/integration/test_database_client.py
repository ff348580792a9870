"""Integration tests for DatabaseClient against an in-memory SQLite database."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from insurepulse.core.database import DatabaseClient


@pytest.fixture
def db_client():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return DatabaseClient(engine)


@pytest.mark.asyncio
async def test_connect_and_create_tables(db_client):
    assert db_client.is_connected is False

    assert await db_client.connect() is True
    await db_client.create_tables()
    # Second run must not fail on existing tables
    await db_client.create_tables()

    async with db_client.engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

    assert {"policies", "claims", "ai_queries"} <= tables
    assert db_client.is_connected is True
    await db_client.disconnect()


@pytest.mark.asyncio
async def test_health_check(db_client):
    health = await db_client.health_check()

    assert health["status"] == "healthy"
    assert health["database"] == "sqlite"
    assert health["latency_test"] == "passed"

    await db_client.disconnect()
    assert db_client.is_connected is False
