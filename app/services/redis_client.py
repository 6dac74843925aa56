# app/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client shared by the scan dedup ledger and health checks."""

    def __init__(self):
        self.pool = None
        self.client = None
        self._initialized = False

    @property
    def configured(self) -> bool:
        return bool(settings.REDIS_URL)

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return
        if not self.configured:
            raise RuntimeError("REDIS_URL is not configured")

        try:
            logger.info("Attempting Redis connection", url_preview=settings.REDIS_URL[:16] + "...")

            self.pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=20,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Fast Redis client initialized successfully", max_connections=20)

        except Exception as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
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
            logger.info("Fast Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            return bool(await self.client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool:
        """
        SET key value NX EX ttl.

        Returns False when the key already exists. Connection errors propagate
        so callers can tell "already seen" apart from "could not check".
        """
        await self._ensure_initialized()
        result = await self.client.set(key, value, nx=True, ex=ttl_s)
        return bool(result)

    async def delete(self, key: str) -> bool:
        """Delete key. Connection errors propagate."""
        await self._ensure_initialized()
        result = await self.client.delete(key)
        return result > 0


# Global instance
fast_redis = FastRedisClient()
