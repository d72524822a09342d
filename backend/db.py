"""Async engine, sessions and schema migrations for the transactions database."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import select
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.app.db.models import SettingEntry

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/cashflow.db"
SCHEMA_VERSION_KEY = "schema_version"
MIGRATIONS_DIR = Path(__file__).resolve().parent / "alembic"

# Sync URL prefixes and the async driver each one maps to.
_ASYNC_DRIVERS = (
    ("postgres://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
    ("sqlite://", "sqlite+aiosqlite://"),
)
_SQLITE_FILE_PREFIX = "sqlite+aiosqlite:///"


def normalize_database_url(raw_url: str | None) -> str:
    """Point ``raw_url`` at an async driver.

    For SQLite files the parent directory is created so the first
    connection does not fail on a fresh checkout.
    """

    url = str(raw_url or DEFAULT_DATABASE_URL)
    for prefix, async_prefix in _ASYNC_DRIVERS:
        if url.startswith(prefix):
            url = async_prefix + url[len(prefix) :]
            break

    if url.startswith(_SQLITE_FILE_PREFIX):
        db_path = url[len(_SQLITE_FILE_PREFIX) :]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return url


def create_engine(database_url: str | None) -> AsyncEngine:
    return create_async_engine(normalize_database_url(database_url), echo=False)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def _upgrade_to_head(connection: Connection) -> None:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # env.py migrates on this connection instead of opening its own engine.
    config.attributes["connection"] = connection
    command.upgrade(config, "head")


async def init_db(
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    version: str,
) -> None:
    """Migrate the schema to head and record ``version`` as the schema version."""

    async with engine.begin() as connection:
        await connection.run_sync(_upgrade_to_head)

    async with session_factory() as session:
        setting = await session.scalar(
            select(SettingEntry).where(SettingEntry.key == SCHEMA_VERSION_KEY)
        )
        if setting is None:
            session.add(SettingEntry(key=SCHEMA_VERSION_KEY, value=version))
        else:
            setting.value = version
        await session.commit()


__all__ = [
    "create_engine",
    "create_session_factory",
    "init_db",
    "normalize_database_url",
]
