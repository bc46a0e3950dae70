"""
Health check and system status endpoints.
"""

from typing import Optional

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.database import authz_engine, engine
from app.core.dependencies import RedisDep

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    version: str
    database: Optional[str] = None
    authz_database: Optional[str] = None
    redis: Optional[str] = None


async def _ping_database(db_engine) -> str:
    try:
        async with db_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "healthy"
    except SQLAlchemyError as e:
        logger.warning("Database health check failed", error=str(e))
        return "unhealthy"


@router.get("/healthz", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.

    Returns the service status without checking dependencies.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app.app_version,
    )


@router.get("/health", response_model=HealthResponse)
async def health_detailed(redis: RedisDep):
    """
    Detailed health check with dependency status.

    Redis is optional: when disabled it reports "disabled" and does not
    degrade the overall status.
    """
    db_status = await _ping_database(engine)
    authz_db_status = await _ping_database(authz_engine)

    if redis is None:
        redis_status = "disabled"
    else:
        try:
            await redis.ping()
            redis_status = "healthy"
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            redis_status = "unhealthy"

    healthy = db_status == "healthy" and authz_db_status == "healthy" and redis_status != "unhealthy"

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=settings.app.app_version,
        database=db_status,
        authz_database=authz_db_status,
        redis=redis_status,
    )
