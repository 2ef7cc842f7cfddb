"""Database connection module for the Ignis CRM local store.

Provides:
- get_engine(): AsyncEngine on the per-profile SQLite file, created on first use
- get_db(): async context manager for use in repository callers
- init_db() / run_migrations(): apply the Alembic revisions in db/migrations
- configure() / dispose_engine(): repoint or close the process-wide handle
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv
from sqlalchemy.engine import make_url as _make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

load_dotenv()

DB_NAME = "crm-ignis"
MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_database_url: Optional[str] = None
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def database_url() -> str:
    """Return the configured URL, falling back to the profile-scoped file.

    Without DATABASE_URL the store lives at
    <IGNIS_DATA_DIR>/<IGNIS_PROFILE>/crm-ignis.db.
    """
    if _database_url:
        return _database_url
    url = os.environ.get("DATABASE_URL")
    if url:
        return url
    data_dir = Path(os.environ.get("IGNIS_DATA_DIR", "~/.ignis-crm")).expanduser()
    profile = os.environ.get("IGNIS_PROFILE", "default")
    return f"sqlite+aiosqlite:///{data_dir / profile / DB_NAME}.db"


def _create_engine(url: str) -> AsyncEngine:
    _url = _make_url(url)
    if _url.drivername != "sqlite+aiosqlite":
        raise RuntimeError(
            f"DATABASE_URL must use the 'sqlite+aiosqlite' driver. "
            f"Got: '{_url.drivername}'. "
            f"Example: sqlite+aiosqlite:///path/to/crm-ignis.db"
        )

    echo = os.environ.get("IGNIS_DB_ECHO", "").lower() in ("1", "true", "yes")
    if _url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_async_engine(
            _url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    Path(_url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(_url, echo=echo)


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, opening it on first use."""
    global _engine, _session_factory
    if _engine is None:
        _engine = _create_engine(database_url())
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.debug("Opened store at %s", _engine.url)
    return _engine


async def configure(url: Optional[str] = None) -> None:
    """Point the store handle at another database (closing the current one).

    Passing None goes back to the environment-derived default.
    """
    global _database_url
    await dispose_engine()
    _database_url = url


@asynccontextmanager
async def get_db() -> AsyncIterator[AsyncSession]:
    """Async context manager that yields a database session.

    Everything done with the session commits together when the block
    exits, or is rolled back if it raises.

    Usage:
        async with get_db() as db:
            result = await leads_repo.add_lead(db, ...)
    """
    get_engine()
    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Database session rolled back due to exception")
            raise


def _alembic_config(connection) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.attributes["connection"] = connection
    return cfg


async def run_migrations(revision: str = "head") -> None:
    """Upgrade the store schema to `revision`. Revisions only add tables/columns."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(
            lambda sync_conn: command.upgrade(_alembic_config(sync_conn), revision)
        )
    logger.info("Store schema at revision %s (%s)", revision, engine.url.database)


async def init_db() -> None:
    """Create or upgrade every table. Safe to call on each startup."""
    await run_migrations("head")


async def dispose_engine() -> None:
    """Dispose the engine connection pool. Call once on application shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
