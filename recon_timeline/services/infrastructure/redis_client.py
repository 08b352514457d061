# recon_timeline/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from recon_timeline.config import settings
from recon_timeline.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client used as a key/value backend for timeline state."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        redis_url = self.url or settings.REDIS_URL
        if not redis_url:
            raise RuntimeError("REDIS_URL is not configured")

        try:
            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=10,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )

            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        await self._ensure_initialized()
        result = await self.client.get(key)
        return result if result else None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        await self._ensure_initialized()
        if ttl_s:
            result = await self.client.setex(key, ttl_s, value)
        else:
            result = await self.client.set(key, value)
        return bool(result)

    async def delete(self, key: str) -> bool:
        await self._ensure_initialized()
        result = await self.client.delete(key)
        return result > 0
