"""
Aggregator base - ordered provider fallback, TTL caching and stale rescue.

A read goes: fresh cache -> providers in order -> stale cache -> NoDataAvailable.
"""
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from loguru import logger

from core.cache import CacheService
from core.exceptions import NoDataAvailable, ProviderError, UnsupportedAsset
from services.providers.base import BaseProvider

T = TypeVar("T")

STALE_WARNING = "Using cached data - live APIs unavailable"
STALE_BULK_WARNING = "Using cached data"

# Failures that move the chain on to the next provider
FALLBACK_ERRORS = (ProviderError, UnsupportedAsset)


def history_ttl(days: int) -> int:
    """Short-range history moves faster, so it is cached for less time."""
    return 300 if days <= 1 else 1800


class BaseAggregator:
    """One data domain served by an ordered list of providers."""

    domain = "base"

    def __init__(self, cache: CacheService, providers: List[BaseProvider]):
        self.cache = cache
        self.providers = list(providers)

    async def close(self):
        """Close every provider's HTTP session."""
        for provider in self.providers:
            await provider.close()

    async def _first_success(self, what: str, call: Callable[[Any], Awaitable[T]]) -> T:
        """
        Try ``call(provider)`` on each available provider in order.

        Raises the last provider error when all of them fail.
        """
        available = [p for p in self.providers if p.is_available()]
        if not available:
            raise ProviderError(f"No {self.domain} providers configured", provider=self.domain)

        last_error: Optional[Exception] = None
        for provider in available:
            try:
                result = await call(provider)
                logger.info(f"Fetched {what} from {provider.name}")
                return result
            except FALLBACK_ERRORS as e:
                logger.warning(f"{provider.label} failed for {what}: {e}, trying next provider")
                last_error = e

        raise last_error

    async def _read_one(
        self,
        key: str,
        ttl: int,
        fetch: Callable[[], Awaitable[Any]],
        parse: Callable[[dict], T],
    ) -> T:
        """Cached single-asset read with stale rescue."""

        async def fetch_serialized():
            reading = await fetch()
            return reading.to_dict()

        try:
            result = await self.cache.get_or_fetch(key, fetch_serialized, ttl)
        except FALLBACK_ERRORS as e:
            stale = await self.cache.get_stale(key)
            if stale is not None:
                logger.warning(f"All {self.domain} providers failed for {key}, serving stale cache")
                return parse(stale).as_stale(STALE_WARNING)

            logger.error(f"All {self.domain} providers failed for {key} and nothing is cached: {e}")
            raise NoDataAvailable(
                f"No {self.domain} data available: {e}",
                details={"key": key},
            ) from e

        if result.cached:
            logger.debug(f"Cache hit: {key}")
        return parse(result.data)

    async def _read_many(
        self,
        assets: List[str],
        bulk_key: str,
        key_for: Callable[[str], str],
        ttl: int,
        fetch: Callable[[], Awaitable[list]],
        parse: Callable[[dict], T],
    ) -> List[T]:
        """
        Cached bulk read. A fresh fetch also fills each asset's own key; when
        the chain is exhausted, whatever per-asset entries remain are served stale.
        """

        async def fetch_serialized():
            readings = await fetch()
            for reading in readings:
                await self.cache.set(key_for(reading.symbol), reading.to_dict(), ttl)
            return [reading.to_dict() for reading in readings]

        try:
            result = await self.cache.get_or_fetch(bulk_key, fetch_serialized, ttl)
        except FALLBACK_ERRORS as e:
            rescued = []
            for asset in assets:
                stale = await self.cache.get_stale(key_for(asset))
                if stale is not None:
                    rescued.append(parse(stale).as_stale(STALE_BULK_WARNING))

            if rescued:
                logger.warning(
                    f"All {self.domain} providers failed for {bulk_key}, "
                    f"serving {len(rescued)}/{len(assets)} stale entries"
                )
                return rescued

            logger.error(f"All {self.domain} providers failed for {bulk_key} and nothing is cached: {e}")
            raise NoDataAvailable(
                f"No {self.domain} data available: {e}",
                details={"key": bulk_key},
            ) from e

        if result.cached:
            logger.debug(f"Cache hit: {bulk_key}")
        return [parse(item) for item in result.data]
