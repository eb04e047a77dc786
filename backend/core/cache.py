"""
Cache Service - Redis-backed TTL cache with an in-process fallback.

Values are stored in a JSON envelope carrying their logical expiry. The
physical entry outlives that expiry by ``stale_retention_seconds`` so that
aggregators can still rescue an expired reading when every provider is down.
"""
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

# Errors that mean "the primary store is unusable right now"
PRIMARY_STORE_ERRORS = (RedisError, OSError)


@dataclass
class CacheResult:
    """Result of ``get_or_fetch``."""
    data: Any
    cached: bool


class CacheService:
    """Key/value cache with TTL, degrading to process memory when Redis is unreachable."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[Any] = None,
        stale_retention_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_url = redis_url
        self.client = client
        self.stale_retention_seconds = stale_retention_seconds
        self._clock = clock
        self._memory: Dict[str, Tuple[str, float]] = {}

    @property
    def backend(self) -> str:
        return "redis" if self.client is not None else "memory"

    async def connect(self):
        """Create the Redis client and check it answers."""
        if self.client is None and self.redis_url:
            self.client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
            )
        if self.client is None:
            logger.info("No Redis configured, using in-memory cache")
            return

        try:
            await self.client.ping()
            logger.info("Redis connected successfully")
        except PRIMARY_STORE_ERRORS as e:
            logger.warning(f"Redis unavailable, falling back to in-memory cache: {e}")
            await self.disconnect()

    async def disconnect(self):
        """Close the Redis client."""
        if self.client is not None:
            try:
                await self.client.aclose()
            except PRIMARY_STORE_ERRORS as e:
                logger.debug(f"Redis close error: {e}")
            self.client = None
            logger.info("Redis connection closed")

    # ========================================================================
    # Public API
    # ========================================================================

    async def set(self, key: str, value: Any, ttl_seconds: int):
        """Serialize and store ``value`` for ``ttl_seconds``."""
        now = self._clock()
        payload = json.dumps({"value": value, "expiresAt": now + ttl_seconds})
        retain = int(ttl_seconds + self.stale_retention_seconds)

        if self.client is not None:
            try:
                await self.client.set(key, payload, ex=retain)
                return
            except PRIMARY_STORE_ERRORS as e:
                logger.debug(f"Redis set failed for {key}, using memory: {e}")

        self._memory[key] = (payload, now + retain)

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss, expiry or undecodable data."""
        envelope = await self._read_envelope(key)
        if envelope is None:
            return None
        if envelope.get("expiresAt", 0) <= self._clock():
            return None
        return envelope.get("value")

    async def get_stale(self, key: str) -> Optional[Any]:
        """Return the cached value even if its TTL has passed, as long as it is not evicted."""
        envelope = await self._read_envelope(key)
        if envelope is None:
            return None
        return envelope.get("value")

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
    ) -> CacheResult:
        """
        Return the cached value if present, otherwise call ``fetch_fn``,
        store its result and return it. Errors from ``fetch_fn`` propagate.
        """
        cached = await self.get(key)
        if cached is not None:
            return CacheResult(data=cached, cached=True)

        fresh = await fetch_fn()
        await self.set(key, fresh, ttl_seconds)
        return CacheResult(data=fresh, cached=False)

    async def invalidate(self, key: str):
        """Delete a key (best effort)."""
        if self.client is not None:
            try:
                await self.client.delete(key)
            except PRIMARY_STORE_ERRORS as e:
                logger.debug(f"Redis delete failed for {key}: {e}")
        self._memory.pop(key, None)

    async def invalidate_pattern(self, prefix: str):
        """Delete every key starting with ``prefix`` (best effort)."""
        prefix = prefix.rstrip("*")

        if self.client is not None:
            try:
                keys = [k async for k in self.client.scan_iter(match=f"{prefix}*")]
                if keys:
                    await self.client.delete(*keys)
            except PRIMARY_STORE_ERRORS as e:
                logger.debug(f"Redis pattern delete failed for {prefix}*: {e}")

        for key in [k for k in self._memory if k.startswith(prefix)]:
            del self._memory[key]

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    # ========================================================================
    # Helper Methods
    # ========================================================================

    async def _read_raw(self, key: str) -> Optional[str]:
        if self.client is not None:
            try:
                return await self.client.get(key)
            except PRIMARY_STORE_ERRORS as e:
                logger.debug(f"Redis get failed for {key}, using memory: {e}")

        entry = self._memory.get(key)
        if entry is None:
            return None
        payload, evict_at = entry
        if evict_at <= self._clock():
            del self._memory[key]
            return None
        return payload

    async def _read_envelope(self, key: str) -> Optional[dict]:
        raw = await self._read_raw(key)
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable cache entry for {key}")
            return None
        if not isinstance(envelope, dict) or "value" not in envelope:
            return None
        return envelope
