# backend/services/cache_service.py
import redis.asyncio as redis
import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

class CacheService:
    """Redis cache service; JSON values, optional key prefix"""

    def __init__(self, redis_url: str, key_prefix: str = "", enabled: bool = True):
        self.redis_url = redis_url
        self.key_prefix = f"{key_prefix}:" if key_prefix else ""
        self.enabled = enabled
        self.client = None

    @property
    def is_available(self) -> bool:
        return self.enabled and self.client is not None

    def prefix_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def connect(self):
        """Connect to Redis"""
        if not self.enabled:
            logger.info("⚠ Caching disabled; alarms are not debounced")
            return

        try:
            self.client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5
            )

            await self.client.ping()
            logger.info("✓ Connected to Redis Cache")

        except Exception as e:
            logger.error(f"✗ Failed to connect to Redis: {e}")
            raise

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache; None on miss or error"""
        if not self.is_available:
            return None
        try:
            value = await self.client.get(self.prefix_key(key))
            return json.loads(value) if value else None
        except Exception as e:
            logger.error(f"✗ Cache get error: {e}")
            return None

    async def set(self, key: str, value: Any, expire: int = 3600):
        """Set value in cache"""
        if not self.is_available:
            return
        try:
            await self.client.setex(self.prefix_key(key), expire, json.dumps(value))
        except Exception as e:
            logger.error(f"✗ Cache set error: {e}")

    async def set_if_absent(self, key: str, value: Any, expire: int) -> bool:
        """Atomic test-and-set with TTL. True when this call created the key.

        Errors fail open (True) so an unreachable cache never suppresses alarms.
        """
        if not self.is_available:
            return True
        try:
            created = await self.client.set(self.prefix_key(key), json.dumps(value), ex=expire, nx=True)
            return bool(created)
        except Exception as e:
            logger.error(f"✗ Cache set-if-absent error: {e}")
            return True

    async def delete(self, key: str):
        """Delete key"""
        if not self.is_available:
            return
        try:
            await self.client.delete(self.prefix_key(key))
        except Exception as e:
            logger.error(f"✗ Cache delete error: {e}")

    async def close(self):
        """Close connection"""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("✓ Closed Redis cache connection")
