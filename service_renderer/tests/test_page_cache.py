"""
Unit tests for the Redis page cache.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from structlog.testing import capture_logs

from shared.config import get_config
from shared.errors import CacheBackendError
from service_renderer.app.caching.page_cache import (
    PAGE_CACHE_EXPIRATION_MS,
    PageCache,
    page_cache_prefix,
    strip_database,
)


def counter_value(metrics, **labels):
    return metrics.registry.get_sample_value("page_cache_operations_total", labels) or 0.0


class TestPageCachePrefix:
    """Test cases for the release-scoped namespace."""

    def test_prefix_without_release(self):
        assert page_cache_prefix(None) == "rp"
        assert page_cache_prefix("") == "rp"

    def test_prefix_with_release(self):
        assert page_cache_prefix("v123") == "v123:rp"


class TestPageCache:
    """Test cases for PageCache."""

    @pytest.fixture
    def broken_redis(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        client.set = AsyncMock(side_effect=RedisTimeoutError("timed out"))
        client.ping = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_get_miss(self, page_cache, fake_redis, metrics):
        assert await page_cache.get("/en/actions") is None
        assert fake_redis.get_calls == ["v42:rp:/en/actions"]
        assert counter_value(metrics, cache="page-cache", operation="get", result="miss") == 1.0

    @pytest.mark.asyncio
    async def test_set_then_get_hit(self, page_cache, fake_redis, metrics):
        assert await page_cache.set("/en/actions", "<html>$CSRFTOKEN$</html>") is True

        assert fake_redis.set_calls == [("v42:rp:/en/actions", "<html>$CSRFTOKEN$</html>", PAGE_CACHE_EXPIRATION_MS)]
        assert await page_cache.get("/en/actions") == "<html>$CSRFTOKEN$</html>"
        assert counter_value(metrics, cache="page-cache", operation="get", result="hit") == 1.0
        assert counter_value(metrics, cache="page-cache", operation="set", result="stored") == 1.0

    @pytest.mark.asyncio
    async def test_set_with_explicit_expiry(self, page_cache, fake_redis):
        await page_cache.set("/en/a", "body", expire_in_ms=1000)
        assert fake_redis.set_calls[-1] == ("v42:rp:/en/a", "body", 1000)

    @pytest.mark.asyncio
    async def test_bytes_values_are_decoded(self, fake_redis):
        fake_redis.store["rp:/en/a"] = "café".encode("utf-8")
        cache = PageCache("redis://localhost", client=fake_redis)
        assert await cache.get("/en/a") == "café"

    @pytest.mark.asyncio
    async def test_get_failure_degrades_to_miss(self, broken_redis, metrics):
        cache = PageCache("redis://localhost", client=broken_redis, metrics=metrics)

        assert await cache.get("/en/actions") is None
        assert counter_value(metrics, cache="page-cache", operation="get", result="error") == 1.0

    @pytest.mark.asyncio
    async def test_set_failure_degrades_to_noop(self, broken_redis):
        cache = PageCache("redis://localhost", client=broken_redis)
        assert await cache.set("/en/actions", "body") is False

    @pytest.mark.asyncio
    async def test_get_failure_raises_when_disallowed(self, broken_redis):
        cache = PageCache("redis://localhost", client=broken_redis, allow_get_failures=False)
        with pytest.raises(CacheBackendError) as exc_info:
            await cache.get("/en/actions")
        assert exc_info.value.code == "CACHE_BACKEND_ERROR"

    @pytest.mark.asyncio
    async def test_set_failure_raises_when_disallowed(self, broken_redis):
        cache = PageCache("redis://localhost", client=broken_redis, allow_set_failures=False)
        with pytest.raises(CacheBackendError):
            await cache.set("/en/actions", "body")

    @pytest.mark.asyncio
    async def test_write_behind_failure_log_carries_request(self, broken_redis):
        cache = PageCache("redis://localhost", client=broken_redis)

        with capture_logs() as logs:
            stored = await cache.write_behind("/en/actions", "body", request_id="req-9", path="/en/actions")

        assert stored is False
        failures = [entry for entry in logs if entry["event"] == "Page cache set failed"]
        assert len(failures) == 1
        assert failures[0]["request_id"] == "req-9"
        assert failures[0]["cache_key"] == "/en/actions"
        assert failures[0]["path"] == "/en/actions"

    @pytest.mark.asyncio
    async def test_ping(self, page_cache, broken_redis):
        assert await page_cache.ping() is True
        assert await PageCache("redis://localhost", client=broken_redis).ping() is False

    @pytest.mark.asyncio
    async def test_start_tolerates_unreachable_redis(self, broken_redis):
        cache = PageCache("redis://localhost", client=broken_redis)
        await cache.start()
        broken_redis.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, page_cache, fake_redis):
        await page_cache.stop()
        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_write_behind_is_tracked_until_done(self, fake_redis):
        release = asyncio.Event()
        original_set = fake_redis.set

        async def slow_set(key, value, px=None):
            await release.wait()
            return await original_set(key, value, px=px)

        fake_redis.set = slow_set
        cache = PageCache("redis://localhost", client=fake_redis)

        task = asyncio.create_task(cache.write_behind("/en/a", "body"))
        await asyncio.sleep(0)
        assert cache.pending_writes == 1

        release.set()
        drained = asyncio.create_task(cache.drain(timeout=1))
        assert await task is True
        await drained
        assert cache.pending_writes == 0
        assert fake_redis.store["rp:/en/a"] == "body"

    @pytest.mark.asyncio
    async def test_drain_without_pending_writes(self, page_cache):
        await page_cache.drain(timeout=0.1)
        assert page_cache.pending_writes == 0


class TestPageCacheDatabase:
    """The page cache always connects to its own database index."""

    def test_default_config_uses_reserved_database(self):
        config = get_config("renderer", 8000)
        cache = PageCache(config.redis_url, database_number=config.page_cache_db)

        client = cache._get_redis()

        assert client.connection_pool.connection_kwargs["db"] == config.page_cache_db == 1

    @pytest.mark.parametrize("redis_url", [
        "redis://localhost:6379/0",
        "redis://localhost:6379/3",
        "redis://localhost:6379?db=5",
    ])
    def test_database_in_url_is_ignored(self, redis_url):
        cache = PageCache(redis_url, database_number=1)
        assert cache._get_redis().connection_pool.connection_kwargs["db"] == 1

    @pytest.mark.parametrize("redis_url,expected", [
        ("redis://localhost:6379/0", "redis://localhost:6379"),
        ("redis://:secret@cache.internal:6380/2", "redis://:secret@cache.internal:6380"),
        ("rediss://localhost:6379/0?db=4&ssl_cert_reqs=none", "rediss://localhost:6379?ssl_cert_reqs=none"),
        ("unix:///var/run/redis.sock?db=2", "unix:///var/run/redis.sock"),
        ("redis://localhost:6379", "redis://localhost:6379"),
    ])
    def test_strip_database(self, redis_url, expected):
        assert strip_database(redis_url) == expected
