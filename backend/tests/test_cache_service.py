from unittest.mock import AsyncMock

from services.cache_service import CacheService


class TestCacheService:
    async def test_round_trip_with_prefix(self, cache, fake_redis):
        await cache.set("project:1", {"name": "Shop"}, expire=60)

        assert await cache.get("project:1") == {"name": "Shop"}
        assert "kw:project:1" in fake_redis._store

    async def test_expiry(self, cache, fake_redis):
        await cache.set("k", 1, expire=60)
        fake_redis.advance(60)
        assert await cache.get("k") is None

    async def test_delete(self, cache):
        await cache.set("k", 1)
        await cache.delete("k")
        assert await cache.get("k") is None

    async def test_set_if_absent_is_first_writer_wins(self, cache):
        assert await cache.set_if_absent("alarm:x", {"logId": "1"}, 300) is True
        assert await cache.set_if_absent("alarm:x", {"logId": "2"}, 300) is False
        assert await cache.get("alarm:x") == {"logId": "1"}

    async def test_set_if_absent_fails_open(self, cache):
        cache.client.set = AsyncMock(side_effect=ConnectionError("down"))
        assert await cache.set_if_absent("alarm:x", {}, 300) is True

    async def test_get_error_is_a_miss(self, cache):
        cache.client.get = AsyncMock(side_effect=ConnectionError("down"))
        assert await cache.get("k") is None

    async def test_disabled(self):
        cache = CacheService("redis://unused", enabled=False)
        await cache.connect()

        assert cache.is_available is False
        assert await cache.get("k") is None
        assert await cache.set_if_absent("k", 1, 10) is True
