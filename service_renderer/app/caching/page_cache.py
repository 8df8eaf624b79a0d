"""
Redis-backed page cache for the renderer.
"""

import asyncio
from typing import Optional, Set, TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import CacheBackendError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


PAGE_CACHE_DATABASE_NUMBER = 1
PAGE_CACHE_EXPIRATION_MS = 24 * 60 * 60 * 1000
PAGE_CACHE_KEY_PREFIX = "rp"

BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def page_cache_prefix(release_version: Optional[str] = None) -> str:
    """Namespace entries by release so pages never leak across deploys."""
    if release_version:
        return f"{release_version}:{PAGE_CACHE_KEY_PREFIX}"
    return PAGE_CACHE_KEY_PREFIX


def strip_database(redis_url: str) -> str:
    """Drop any database selector from a Redis URL.

    redis-py lets a ``/<db>`` path or ``?db=`` query override the ``db``
    keyword, so the page cache removes both to keep its reserved database.
    """
    parts = urlsplit(redis_url)
    query = urlencode([(name, value) for name, value in parse_qsl(parts.query) if name != "db"])
    if parts.scheme == "unix":
        # The path is the socket, not a database
        return f"unix://{parts.netloc}{parts.path}" + (f"?{query}" if query else "")
    return urlunsplit((parts.scheme, parts.netloc, "", query, ""))


class PageCache:
    """Read-through cache of rendered page bodies.

    Backend failures are logged and reported as a miss (``get``) or as
    ``False`` (``set``) unless failures were explicitly disallowed, in which
    case they raise :class:`CacheBackendError`.
    """

    def __init__(
        self,
        redis_url: str,
        *,
        database_number: int = PAGE_CACHE_DATABASE_NUMBER,
        prefix: str = PAGE_CACHE_KEY_PREFIX,
        expire_in_ms: int = PAGE_CACHE_EXPIRATION_MS,
        allow_get_failures: bool = True,
        allow_set_failures: bool = True,
        name: str = "page-cache",
        metrics: Optional["MetricsCollector"] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.database_number = database_number
        self.prefix = prefix
        self.expire_in_ms = expire_in_ms
        self.allow_get_failures = allow_get_failures
        self.allow_set_failures = allow_set_failures
        self.name = name
        self.metrics = metrics
        self.logger = get_logger("renderer.page_cache")

        self._redis: Optional[redis.Redis] = client
        self._pending_writes: Set[asyncio.Task] = set()

    def _get_redis(self) -> redis.Redis:
        """Get the shared Redis client, creating the pool on first use."""
        if self._redis is None:
            self._redis = redis.from_url(
                strip_database(self.redis_url),
                db=self.database_number,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def start(self) -> None:
        """Open the connection pool. An unreachable Redis only logs a warning."""
        client = self._get_redis()
        try:
            await client.ping()
            self.logger.info("Page cache started", name=self.name, prefix=self.prefix, db=self.database_number)
        except BACKEND_ERRORS as exc:
            self.logger.warning("Page cache unavailable at startup, serving uncached", name=self.name, error=str(exc))

    async def stop(self, drain_timeout: Optional[float] = None) -> None:
        """Drain in-flight writes and close the pool."""
        await self.drain(drain_timeout)
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Page cache stopped", name=self.name)

    async def get(self, key: str) -> Optional[str]:
        """Return the cached page body, or ``None`` on a miss."""
        try:
            value = await self._get_redis().get(self._make_key(key))
        except BACKEND_ERRORS as exc:
            self._record("get", "error")
            if not self.allow_get_failures:
                raise CacheBackendError("GET", str(exc), {"key": key}) from exc
            self.logger.error("Page cache get failed", name=self.name, key=key, error=str(exc))
            return None

        if value is None:
            self._record("get", "miss")
            return None

        self._record("get", "hit")
        return value.decode("utf-8") if isinstance(value, bytes) else value

    async def set(self, key: str, value: str, expire_in_ms: Optional[int] = None) -> bool:
        """Store a page body under ``key``; returns whether the write landed."""
        return await self._store(key, value, expire_in_ms, self.logger)

    async def write_behind(
        self,
        key: str,
        value: str,
        expire_in_ms: Optional[int] = None,
        request_id: Optional[str] = None,
        path: Optional[str] = None,
    ) -> bool:
        """Post-response write, tracked so shutdown can wait for it.

        Runs after the request's log context has been cleared, so the
        originating request id and path are bound explicitly.
        """
        logger = self.logger.bind(cache_key=key, request_id=request_id, path=path)
        task = asyncio.current_task()
        if task is not None:
            self._pending_writes.add(task)
        try:
            return await self._store(key, value, expire_in_ms, logger)
        finally:
            if task is not None:
                self._pending_writes.discard(task)

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight writes to finish."""
        pending = [task for task in self._pending_writes if task is not asyncio.current_task()]
        if not pending:
            return
        self.logger.info("Draining page cache writes", name=self.name, pending=len(pending))
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            self.logger.warning("Page cache writes still pending after drain", name=self.name, pending=len(not_done))

    async def ping(self) -> bool:
        """Check Redis health."""
        try:
            return bool(await self._get_redis().ping())
        except BACKEND_ERRORS:
            return False

    async def _store(self, key: str, value: str, expire_in_ms: Optional[int], logger) -> bool:
        ttl_ms = expire_in_ms if expire_in_ms is not None else self.expire_in_ms
        try:
            await self._get_redis().set(self._make_key(key), value, px=ttl_ms)
        except BACKEND_ERRORS as exc:
            self._record("set", "error")
            if not self.allow_set_failures:
                raise CacheBackendError("SET", str(exc), {"key": key}) from exc
            logger.error("Page cache set failed", name=self.name, key=key, error=str(exc))
            return False

        self._record("set", "stored")
        logger.debug("Cached page", name=self.name, key=key, ttl_ms=ttl_ms)
        return True

    def _record(self, operation: str, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "page_cache_operations_total",
                cache=self.name,
                operation=operation,
                result=result,
            )
