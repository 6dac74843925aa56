"""
Redis-backed scan ledger.

Each processed scan id is a key with the retention TTL, so expiry is handled
by Redis itself and purge_expired has nothing to do.
"""

import redis.asyncio as redis

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import FastRedisClient, fast_redis

from ..domain.errors import UnavailableError
from .base import ScanLedger

logger = get_logger(__name__)

KEY_PREFIX = "matchmaking:scan:"


class RedisScanLedger(ScanLedger):
    def __init__(self, client: FastRedisClient = fast_redis):
        self._client = client

    @staticmethod
    def _key(scan_id: str) -> str:
        return f"{KEY_PREFIX}{scan_id}"

    async def claim(self, scan_id: str, ttl_seconds: int) -> bool:
        try:
            return await self._client.set_if_absent(self._key(scan_id), "1", ttl_seconds)
        except (redis.ConnectionError, redis.TimeoutError, RuntimeError) as e:
            logger.error("Scan ledger claim failed", scan_id=scan_id, error=str(e))
            raise UnavailableError("Scan ledger unavailable", scan_id=scan_id) from e

    async def release(self, scan_id: str) -> None:
        try:
            await self._client.delete(self._key(scan_id))
        except (redis.ConnectionError, redis.TimeoutError, RuntimeError) as e:
            logger.error("Scan ledger release failed", scan_id=scan_id, error=str(e))
            raise UnavailableError("Scan ledger unavailable", scan_id=scan_id) from e

    async def purge_expired(self) -> int:
        return 0
