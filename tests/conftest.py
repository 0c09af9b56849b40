"""Shared test fixtures.

Uses an in-memory SQLite database via aiosqlite for isolation (no external
DB needed). PostgreSQL-specific UUID columns are compiled as VARCHAR(36) on
SQLite via a type compiler patch.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from podium.db.base import Base

# Import all models so metadata is populated
from podium.db.models.belt import Belt, BeltChallenge, BeltSettings
from podium.db.models.coin_transaction import CoinTransaction  # noqa: F401
from podium.db.models.tournament import Tournament, TournamentMatch, TournamentParticipant  # noqa: F401
from podium.db.models.user import User

# ---------------------------------------------------------------------------
# SQLite UUID compat: teach SQLite to compile PG UUID as VARCHAR(36)
# ---------------------------------------------------------------------------
import sqlalchemy.dialects.sqlite.base as _sqlite_base

if not hasattr(_sqlite_base.SQLiteTypeCompiler, "visit_UUID"):
    def _visit_uuid(self, type_, **kw):
        return "VARCHAR(36)"
    _sqlite_base.SQLiteTypeCompiler.visit_UUID = _visit_uuid

# ---------------------------------------------------------------------------
# Database: in-memory SQLite via aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite://"

_test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)

_tables_created = False

# Fixed clock for time-dependent policy tests
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def db_session():
    """Per-test session with rollback for isolation."""
    global _tables_created
    if not _tables_created:
        async with _test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        _tables_created = True

    conn = await _test_engine.connect()
    txn = await conn.begin()
    session = AsyncSession(bind=conn, expire_on_commit=False)

    yield session

    await session.close()
    await txn.rollback()
    await conn.close()


# ---------------------------------------------------------------------------
# FastAPI app + httpx client
# ---------------------------------------------------------------------------

@asynccontextmanager
async def _noop_lifespan(app):
    yield


@pytest.fixture
async def app(db_session):
    """FastAPI app with overridden DB dependency and no lifespan."""
    from podium.dependencies import get_db
    from podium.main import create_app

    application = create_app()
    application.router.lifespan_context = _noop_lifespan

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncClient:
    """httpx AsyncClient for making requests against the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

@pytest.fixture
async def seed_users(db_session) -> list[User]:
    """Eight users with coins; elo descends with the index."""
    users = [
        User(username=f"debater{i}", elo_rating=1600.0 - i * 50, coins=1000)
        for i in range(8)
    ]
    for u in users:
        db_session.add(u)
    await db_session.flush()
    return users


@pytest.fixture
async def seed_belt_settings(db_session) -> list[BeltSettings]:
    """Default settings row for every belt type."""
    rows = [
        BeltSettings(belt_type=t)
        for t in ("ROOKIE", "CATEGORY", "CHAMPIONSHIP", "UNDEFEATED", "TOURNAMENT")
    ]
    for r in rows:
        db_session.add(r)
    await db_session.flush()
    return rows


@pytest.fixture
async def seed_belt(db_session, seed_users, seed_belt_settings) -> Belt:
    """CATEGORY belt held by debater0, past the grace period and recently defended."""
    belt = Belt(
        name="Ethics Belt",
        type="CATEGORY",
        status="ACTIVE",
        holder_id=seed_users[0].id,
        became_holder_at=NOW - timedelta(days=40),
        last_defended_at=NOW - timedelta(days=10),
    )
    db_session.add(belt)
    await db_session.flush()
    return belt


@pytest.fixture
async def seed_pending_challenge(db_session, seed_belt, seed_users) -> BeltChallenge:
    """Pending 150-coin challenge from debater1, created a day before NOW."""
    challenge = BeltChallenge(
        belt_id=seed_belt.id,
        challenger_id=seed_users[1].id,
        holder_id=seed_users[0].id,
        status="PENDING",
        entry_fee=150,
        coin_reward=90,
        created_at=NOW - timedelta(days=1),
        expires_at=NOW + timedelta(days=2),
    )
    db_session.add(challenge)
    await db_session.flush()
    return challenge
