import asyncio
import os
from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Module-level app in retro.main is built from the environment on import
os.environ.setdefault("AI_SCHEDULER_ENABLED", "false")
os.environ.setdefault("AI_RUN_ON_STARTUP", "false")

from retro.config import Settings
from retro.models import Base
from retro.services.items import ItemStore
from retro.services.likes import LikeLedger


@pytest.fixture()
def test_db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture()
def settings(test_db_url: str) -> Settings:
    return Settings(
        debug=True,
        database_url=test_db_url,
        create_all=True,
        scheduler_enabled=False,
        ai_run_on_startup=False,
        ai_timeout_seconds=5,
    )


@pytest.fixture()
def app(settings: Settings):
    from retro.main import create_app
    return create_app(settings)


@pytest.fixture()
def board(app):
    return app.state.board


@pytest_asyncio.fixture()
async def client(app) -> AsyncIterator[AsyncClient]:
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac


@pytest_asyncio.fixture()
async def session_maker(test_db_url: str):
    engine = create_async_engine(test_db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
def store_and_ledger():
    """Store and ledger sharing one write sequencer, as in the app."""
    lock = asyncio.Lock()
    return ItemStore(lock), LikeLedger(lock)
