"""
Redis-Client und kurzlebiger Cache für Regel-Konfigurationen.

Der Cache ist optional (RULE_CACHE_TTL_SECONDS=0 deaktiviert ihn) und wird
bei jeder Regeländerung invalidiert.
"""
import uuid

import redis.asyncio as aioredis

from app.core.config import settings

redis_client: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return redis_client


async def close_redis():
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


class RuleConfigCache:
    """Speichert die serialisierte RuleConfig pro Tenant mit TTL."""

    def __init__(self, client: aioredis.Redis, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(tenant_id: uuid.UUID) -> str:
        return f"compliance:rule-config:{tenant_id}"

    async def get(self, tenant_id: uuid.UUID) -> str | None:
        return await self.client.get(self._key(tenant_id))

    async def set(self, tenant_id: uuid.UUID, payload: str) -> None:
        await self.client.set(self._key(tenant_id), payload, ex=self.ttl_seconds)

    async def invalidate(self, tenant_id: uuid.UUID) -> None:
        await self.client.delete(self._key(tenant_id))


async def get_rule_config_cache() -> RuleConfigCache | None:
    if settings.RULE_CACHE_TTL_SECONDS <= 0:
        return None
    return RuleConfigCache(await get_redis(), settings.RULE_CACHE_TTL_SECONDS)
