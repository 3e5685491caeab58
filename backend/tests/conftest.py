"""
StitchCraft Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session: AsyncMock session for unit tests (no database)
    ├── org_id / ctx / other_ctx: RequestContext for two organizations
    ├── sqlite_engine → session_factory → db_session:
    │       in-memory SQLite with the real schema, one per test
    └── test_client: HTTPX AsyncClient against a fresh app whose
            get_db_session dependency is bound to session_factory
"""

import os

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests
os.environ["ENVIRONMENT"] = "test"

from typing import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.context import RequestContext  # noqa: E402
from app.database import Base, get_db_session  # noqa: E402

# Register every table on Base.metadata
from app.models import client as _client_models  # noqa: E402,F401
from app.models import measurement as _measurement_models  # noqa: E402,F401


# ══════════════════════════════════════════════════════════════════════════
# Unit-test fixtures (no database)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        async def test_missing_client(mock_db_session):
            mock_db_session.execute.return_value.scalar_one_or_none.return_value = None
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.add = MagicMock()
    return session


@pytest.fixture
def org_id():
    return uuid4()


@pytest.fixture
def ctx(org_id):
    """Request context of the tailoring business under test."""
    return RequestContext(organization_id=org_id, user_id="u-1", user_name="Ama")


@pytest.fixture
def other_ctx():
    """A second, unrelated organization."""
    return RequestContext(organization_id=uuid4())


@pytest.fixture
def tailor_measurements():
    return {"chest": 38, "waist": 32}


@pytest.fixture
def client_measurements():
    return {"chest": 40, "waist": 32, "hips": 44}


# ══════════════════════════════════════════════════════════════════════════
# SQLite-backed fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def sqlite_engine():
    """
    In-memory SQLite engine with the full schema.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return async_sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    Async HTTP client for a fresh app instance.

    Each test gets its own app, so rate limiter state never leaks between
    tests. Requests commit through session_factory just like get_db_session.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from app.main import create_app

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def org_headers(org_id):
    return {"X-Organization-ID": str(org_id), "X-User-Name": "Ama"}
