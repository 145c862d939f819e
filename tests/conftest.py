"""Shared fixtures: a throwaway SQLite database migrated by the engine itself."""

from datetime import timedelta

import pytest
import structlog
from sqlalchemy import func, select

from relstore.auth.repository import OneTimeTokenRepository, SessionRepository, UserRepository
from relstore.auth.schemas import UserCreate
from relstore.cache.repository import CacheRepository
from relstore.infrastructure.database import Database
from relstore.migrations.catalog import MODULES
from relstore.migrations.engine import MigrationEngine
from relstore.records import utcnow


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    # the CLI configures structlog against CliRunner's temporary streams
    structlog.reset_defaults()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'relstore.db'}"


@pytest.fixture
async def db(db_url):
    database = Database.from_url(db_url)
    yield database
    await database.dispose()


@pytest.fixture
async def migrated_db(db):
    engine = MigrationEngine()
    for module in MODULES:
        await engine.apply(module, db)
    return db


@pytest.fixture
def users(migrated_db) -> UserRepository:
    return UserRepository(migrated_db)


@pytest.fixture
def sessions(migrated_db) -> SessionRepository:
    return SessionRepository(migrated_db)


@pytest.fixture
def tokens(migrated_db) -> OneTimeTokenRepository:
    return OneTimeTokenRepository(migrated_db)


@pytest.fixture
def cache(migrated_db) -> CacheRepository:
    return CacheRepository(migrated_db)


@pytest.fixture
async def user(users):
    return await users.create(UserCreate(email="owner@example.com", metadata={"plan": "free"}))


def hours(n: float):
    return utcnow() + timedelta(hours=n)


async def count_rows(db: Database, table, *where) -> int:
    """Direct existence check that bypasses the repositories."""
    async with db.session() as session:
        res = await session.execute(select(func.count()).select_from(table).where(*where))
        return res.scalar_one()
