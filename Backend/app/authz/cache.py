"""
Redis cache for the role -> permissions map.

default_role_permissions is read on every decision and written rarely,
so the whole map is cached as one JSON document. Writes through the
admin service delete the key.
"""

import json
from typing import Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.authz.catalog import AppPermission, AppRole, parse_permission_set, parse_role
from app.authz.errors import CatalogError

logger = structlog.get_logger(__name__)

RolePermissionMap = dict[AppRole, frozenset[AppPermission]]

CACHE_KEY = "authz:role_permissions"
CACHE_TTL = 300  # 5 minutes


class RolePermissionCache:
    """Versionless cache of the default role permission map."""

    def __init__(self, redis: Redis, ttl: int = CACHE_TTL, key: str = CACHE_KEY):
        self.redis = redis
        self.ttl = ttl
        self.key = key

    async def get(self) -> Optional[RolePermissionMap]:
        """Return the cached map, or None on miss or cache failure."""
        try:
            cached = await self.redis.get(self.key)
        except RedisError as e:
            logger.warning("Role permission cache read failed", error=str(e))
            return None

        if not cached:
            return None

        try:
            data = json.loads(cached)
            return {parse_role(role): parse_permission_set(perms) for role, perms in data.items()}
        except (ValueError, AttributeError, CatalogError) as e:
            # Corrupt, or written by a build with a different catalog
            logger.warning("Discarding unreadable role permission cache entry", error=str(e))
            await self.invalidate()
            return None

    async def set(self, role_map: RolePermissionMap) -> None:
        data = {role.value: sorted(p.value for p in perms) for role, perms in role_map.items()}
        try:
            await self.redis.set(self.key, json.dumps(data), ex=self.ttl)
        except RedisError as e:
            logger.warning("Role permission cache write failed", error=str(e))

    async def invalidate(self) -> None:
        try:
            await self.redis.delete(self.key)
        except RedisError as e:
            # Entry expires after ttl regardless
            logger.warning("Role permission cache invalidation failed", error=str(e))
