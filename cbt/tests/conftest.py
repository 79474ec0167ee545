"""
Shared fixtures: a throwaway sqlite database per test, session factories,
a fast clock, and an HTTP client bound to the app.
"""
import asyncio
import os
import random
from typing import AsyncGenerator

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("EMAIL_FUNCTION_URL", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from cbt.database import build_session_factory, get_db, get_session_factory
from cbt.orm.base import Base
from cbt.services.session_clock import SessionClock
from cbt.tests.factories import fast_sleep


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cbt_test.db'}",
        poolclass=NullPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fast_clock():
    """Clock factory whose one-second ticks take no wall time."""
    def factory(seconds: int) -> SessionClock:
        return SessionClock(seconds, sleep=fast_sleep)
    return factory


@pytest.fixture
def frozen_clock():
    """Clock factory that never ticks on its own."""
    never = asyncio.Event()

    async def wait_forever(_seconds: float) -> None:
        await never.wait()

    def factory(seconds: int) -> SessionClock:
        return SessionClock(seconds, sleep=wait_forever)
    return factory


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
async def session_registry():
    from cbt.services.session_registry import SessionRegistry

    registry = SessionRegistry()
    yield registry
    registry.close_all()


@pytest_asyncio.fixture
async def client(session_factory, frozen_clock, session_registry) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with database, registry and clock overrides."""
    from cbt.main import app
    from cbt.routes.exam_taking import get_lifecycle_options
    from cbt.services.email_service import LoggingEmailSender, get_email_sender
    from cbt.services.session_registry import get_session_registry

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_session_registry] = lambda: session_registry
    app.dependency_overrides[get_lifecycle_options] = lambda: {"clock_factory": frozen_clock}
    app.dependency_overrides[get_email_sender] = LoggingEmailSender

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
