"""
Base provider - one upstream HTTP API translated into the shared reading types.

Providers never cache and never fall back to another provider; both are the
aggregator's job.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import aiohttp
from loguru import logger

from core.exceptions import ProviderError, ProviderRateLimited
from services.usage_tracker import UsageTracker


class BaseProvider:
    """Shared HTTP plumbing for provider adapters."""

    name = "base"
    label = "Base"
    base_url = ""
    timeout_seconds = 10.0
    requires_api_key = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        usage: Optional[UsageTracker] = None,
    ):
        self.api_key = api_key
        if timeout_seconds is not None:
            self.timeout_seconds = timeout_seconds
        self.usage = usage
        self.session: Optional[aiohttp.ClientSession] = None

    def is_available(self) -> bool:
        """False when the provider needs an API key and none is configured."""
        return bool(self.api_key) or not self.requires_api_key

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        return self.session

    async def close(self):
        """Close HTTP session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET ``url`` and decode JSON, translating every failure into a ProviderError."""
        if not self.is_available():
            raise ProviderError(f"{self.label} API key not configured", provider=self.name)

        session = await self._get_session()
        if self.usage:
            self.usage.record(self.name)

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with session.get(url, params=params, headers=headers, timeout=timeout) as response:
                if response.status == 429:
                    raise ProviderRateLimited(f"{self.label} rate limit exceeded", provider=self.name)
                if response.status == 401:
                    raise ProviderError(f"Invalid {self.label} API key", provider=self.name)
                if response.status >= 400:
                    raise ProviderError(f"{self.label} API error: {response.status}", provider=self.name)
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"{self.label} request to {url} failed: {e!r}")
            raise ProviderError(f"{self.label} API error: {e or type(e).__name__}", provider=self.name) from e

    def require(self, payload: Any, *keys: str, context: str = "") -> None:
        """Raise ProviderError unless ``payload`` is a dict holding every key."""
        where = f" for {context}" if context else ""
        if not isinstance(payload, dict):
            raise ProviderError(f"{self.label} returned an unexpected payload{where}", provider=self.name)
        missing = [k for k in keys if payload.get(k) is None]
        if missing:
            raise ProviderError(
                f"{self.label} response missing {', '.join(missing)}{where}",
                provider=self.name,
            )

    def to_float(self, value: Any, field: str) -> float:
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ProviderError(f"{self.label} sent non-numeric {field}: {value!r}", provider=self.name) from e

    def to_timestamp(self, value: Any, field: str, millis: bool = False) -> datetime:
        """Epoch seconds (or milliseconds) as an aware UTC datetime."""
        seconds = self.to_float(value, field)
        if millis:
            seconds /= 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ProviderError(f"{self.label} sent an invalid {field}: {value!r}", provider=self.name) from e

    def require_row(self, row: Any, length: int, field: str) -> Sequence:
        """Raise ProviderError unless ``row`` is a list with at least ``length`` items."""
        if not isinstance(row, (list, tuple)) or len(row) < length:
            raise ProviderError(f"{self.label} sent a malformed {field} row: {row!r}", provider=self.name)
        return row
