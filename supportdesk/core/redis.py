import logging
from redis import asyncio as aioredis
from .config import settings

log = logging.getLogger(__name__)


class RedisManager:
    def __init__(self):
        self.redis = None

    async def connect(self):
        """Connect to Redis (called on FastAPI startup). No-op when REDIS_URL is unset."""
        if not settings.REDIS_URL:
            log.info("REDIS_URL not set; role cache disabled")
            return
        self.redis = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )

    async def close(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def get_role(self, user_id: str) -> str | None:
        if not self.redis:
            return None
        return await self.redis.get(f"role:{user_id}")

    async def set_role(self, user_id: str, role: str):
        if not self.redis:
            return
        await self.redis.setex(f"role:{user_id}", settings.ROLE_CACHE_TTL_SECONDS, role)

    async def forget_role(self, user_id: str):
        if not self.redis:
            return
        await self.redis.delete(f"role:{user_id}")

redis_manager = RedisManager()
