"""
Database configuration and session management.

Two session factories are exposed: the regular one used by route
handlers and administrative services, and an authorization one bound to
the engine's own credential. The authorization session is only ever
handed to the AuthorizationEngine.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def _engine_options(dsn: str) -> dict[str, Any]:
    """Pool options for a DSN. SQLite pools take no sizing arguments."""
    options: dict[str, Any] = {"echo": settings.app.app_debug}
    if not dsn.startswith("sqlite"):
        options["pool_size"] = settings.database.pool_size
        options["max_overflow"] = settings.database.max_overflow
    return options


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on FK enforcement (and so ON DELETE CASCADE) for SQLite."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# Create async engine
engine = create_async_engine(settings.database.dsn, **_engine_options(settings.database.dsn))

# Engine used by the authorization engine (security-definer credential)
authz_engine = create_async_engine(settings.database.authz_dsn, **_engine_options(settings.database.authz_dsn))

if settings.database.dsn.startswith("sqlite"):
    enable_sqlite_foreign_keys(engine)
if settings.database.authz_dsn.startswith("sqlite"):
    enable_sqlite_foreign_keys(authz_engine)

# Create async session factories
async_session_factory = make_session_factory(engine)
authz_session_factory = make_session_factory(authz_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session for dependency injection.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_authz_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a read session bound to the authorization credential.

    Nothing is committed; the engine only reads.
    """
    async with authz_session_factory() as session:
        yield session


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session as a context manager.

    Yields:
        AsyncSession: Database session

    Example:
        async with get_db_context() as session:
            result = await session.execute(query)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database (create tables if they don't exist)."""
    async with engine.begin() as conn:
        # Import all models here to ensure they are registered with Base
        from app.authz import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
    await authz_engine.dispose()
