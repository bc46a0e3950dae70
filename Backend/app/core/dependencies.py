"""
Shared FastAPI dependencies: Redis client and caller identity.
"""

import uuid
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from redis.asyncio import Redis

from app.core.config import settings


# ============================================================================
# Redis
# ============================================================================

# Process-wide client; created lazily on first use
_redis: Optional[Redis] = None


async def get_redis_pool() -> Optional[Redis]:
    """
    Return the shared Redis client.

    None when Redis is disabled; callers then skip caching.
    """
    global _redis

    if not settings.redis.enabled:
        return None

    if _redis is None:
        _redis = Redis.from_url(
            settings.redis.dsn,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.pool_size,
        )
    return _redis


async def close_redis_pool() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def get_redis() -> Optional[Redis]:
    return await get_redis_pool()


RedisDep = Annotated[Optional[Redis], Depends(get_redis)]


# ============================================================================
# Caller Identity
# ============================================================================


async def get_current_user_id_optional(request: Request) -> Optional[uuid.UUID]:
    """
    User id from the trusted identity header.

    Authentication happens upstream; this only parses the id. A missing
    or malformed header yields None.
    """
    # CORS preflight carries no identity
    if request.method == "OPTIONS":
        return None

    header = request.headers.get(settings.authz.identity_header)
    if not header:
        return None

    try:
        return uuid.UUID(header)
    except ValueError:
        return None


async def get_current_user_id(
    user_id: Annotated[Optional[uuid.UUID], Depends(get_current_user_id_optional)],
) -> uuid.UUID:
    """Authenticated caller id; 401 without one."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user_id


CurrentUserIdDep = Annotated[uuid.UUID, Depends(get_current_user_id)]

