"""Integration-test fixtures.

Requires PostgreSQL at DATABASE_URL, Redis at REDIS_URL and migrations
(alembic upgrade head). All integration tests share a single event loop so
that the module-level SQLAlchemy async engine pool and Redis pool (both
created at import time) remain valid across the entire test session.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from config.settings import settings
from src.main import app
from src.pm_common.database import async_session_factory


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client, keeps the engine pool alive."""
    settings.RATE_LIMIT_ENABLED = False
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def seeded_market() -> str:
    """An active binary market, 500 tokens on the first option and 300 on the second."""
    market_id = f"mkt-it-{uuid.uuid4().hex[:8]}"
    async with async_session_factory() as db:
        await db.execute(
            text("""
                INSERT INTO markets (id, title, description, status, ends_at)
                VALUES (:id, 'Will they stay together through 2030?',
                        'Integration test market', 'active', NOW() + INTERVAL '30 days')
            """),
            {"id": market_id},
        )
        await db.execute(
            text("""
                INSERT INTO market_options (id, market_id, text, sort_order, total_tokens)
                VALUES ('yes', :id, 'Stay together', 0, 500),
                       ('no',  :id, 'Break up',      1, 300)
            """),
            {"id": market_id},
        )
        await db.commit()
    return market_id


@pytest.fixture
def user() -> str:
    """A fresh user id per test."""
    return f"it-user-{uuid.uuid4().hex[:10]}"
