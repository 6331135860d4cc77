# app/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client backing every document the service persists."""

    def __init__(self):
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            redis_url = settings.redis_url()

            logger.info("Attempting Redis connection", url_preview=redis_url.split("@")[-1][:30])

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
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
        """Ensure Redis is initialized, fallback if not"""
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        """Get value - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:30], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """Set value with TTL - with fallback handling"""
        try:
            await self._ensure_initialized()

            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:30], error=str(e))
            return False

    async def set_nx(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """Set only if the key is absent. True means this caller won the key."""
        try:
            await self._ensure_initialized()
            result = await self.client.set(key, value, nx=True, ex=ttl_s)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET NX failed", key=key[:30], error=str(e))
            return False

    async def getdel(self, key: str) -> str | None:
        """Read and delete a key in one round trip (single-use values)."""
        try:
            await self._ensure_initialized()
            result = await self.client.getdel(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GETDEL failed", key=key[:30], error=str(e))
            return None

    async def delete(self, key: str) -> bool:
        """Delete key - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:30], error=str(e))
            return False

    async def mget(self, keys: list[str]) -> list[str | None]:
        """Fetch several keys at once, preserving order."""
        if not keys:
            return []
        try:
            await self._ensure_initialized()
            return list(await self.client.mget(keys))
        except Exception as e:
            logger.error("Redis MGET failed", key_count=len(keys), error=str(e))
            return [None] * len(keys)

    async def sadd(self, key: str, member: str) -> bool:
        try:
            await self._ensure_initialized()
            await self.client.sadd(key, member)
            return True
        except Exception as e:
            logger.error("Redis SADD failed", key=key[:30], error=str(e))
            return False

    async def srem(self, key: str, member: str) -> bool:
        try:
            await self._ensure_initialized()
            await self.client.srem(key, member)
            return True
        except Exception as e:
            logger.error("Redis SREM failed", key=key[:30], error=str(e))
            return False

    async def smembers(self, key: str) -> set[str]:
        try:
            await self._ensure_initialized()
            return set(await self.client.smembers(key))
        except Exception as e:
            logger.error("Redis SMEMBERS failed", key=key[:30], error=str(e))
            return set()

    async def zadd(self, key: str, member: str, score: float) -> bool:
        try:
            await self._ensure_initialized()
            await self.client.zadd(key, {member: score})
            return True
        except Exception as e:
            logger.error("Redis ZADD failed", key=key[:30], error=str(e))
            return False

    async def zrem(self, key: str, member: str) -> bool:
        try:
            await self._ensure_initialized()
            await self.client.zrem(key, member)
            return True
        except Exception as e:
            logger.error("Redis ZREM failed", key=key[:30], error=str(e))
            return False

    async def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        """Members ordered by descending score (newest first for timestamps)."""
        try:
            await self._ensure_initialized()
            return list(await self.client.zrevrange(key, start, stop))
        except Exception as e:
            logger.error("Redis ZREVRANGE failed", key=key[:30], error=str(e))
            return []

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        try:
            await self._ensure_initialized()
            return list(await self.client.zrangebyscore(key, min_score, max_score))
        except Exception as e:
            logger.error("Redis ZRANGEBYSCORE failed", key=key[:30], error=str(e))
            return []


# Global instance
fast_redis = FastRedisClient()
