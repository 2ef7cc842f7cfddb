"""Shared fixtures: every test gets its own SQLite store migrated to head."""
import pytest_asyncio

from db.connection import configure, dispose_engine, init_db


@pytest_asyncio.fixture
async def store(tmp_path):
    """Point the store handle at a fresh file and close it afterwards."""
    await configure(f"sqlite+aiosqlite:///{tmp_path / 'crm-ignis.db'}")
    await init_db()
    yield tmp_path
    await configure(None)
