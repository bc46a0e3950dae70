"""Pytest configuration and shared fixtures.

Every test gets its own SQLite database file (aiosqlite) with foreign
keys enabled, so ON DELETE CASCADE behaves as on PostgreSQL. The API
client overrides both session dependencies with that database and
disables Redis.
"""

import os
import uuid

# Settings are read at import time; keep tests independent of the host env
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("AUTHZ_SEED_DEFAULT_ROLES", "false")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_REQUESTS", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.authz import models  # noqa: F401
from app.authz.bootstrap import seed_default_role_permissions
from app.authz.engine import AuthorizationEngine
from app.authz.repository import RoleAssignmentRepository
from app.authz.service import TenantAdminService
from app.core.database import Base, enable_sqlite_foreign_keys, get_authz_db, get_db, make_session_factory
from app.core.dependencies import get_redis


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rbac.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def db(session_factory):
    """Session used directly by service, repository and engine tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db):
    """Session over a database holding the default role permission sets."""
    await seed_default_role_permissions(db)
    return db


@pytest.fixture
def service(seeded_db):
    return TenantAdminService(seeded_db)


@pytest.fixture
def engine(seeded_db):
    return AuthorizationEngine(RoleAssignmentRepository(seeded_db))


# ============================================================================
# Users
# ============================================================================


@pytest.fixture
def alice():
    return uuid.UUID("00000000-0000-0000-0000-00000000a11c")


@pytest.fixture
def bob():
    return uuid.UUID("00000000-0000-0000-0000-000000000b0b")


@pytest.fixture
def carol():
    return uuid.UUID("00000000-0000-0000-0000-0000000ca201")


@pytest.fixture
def auth_headers():
    """Build the identity header for a user id."""

    def _headers(user_id: uuid.UUID) -> dict[str, str]:
        return {"X-User-ID": str(user_id)}

    return _headers


# ============================================================================
# API
# ============================================================================


@pytest_asyncio.fixture
async def app(session_factory, seeded_db):
    """Application wired to the test database, without Redis."""
    from app.main import create_app

    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_authz_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return None

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_authz_db] = override_get_authz_db
    application.dependency_overrides[get_redis] = override_get_redis

    yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
