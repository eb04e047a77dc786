"""
Stock Service - Yahoo Finance first, Finnhub as fallback.

Quotes are cached briefly during the regular session and for much longer
outside it, when prices barely move.
"""
from datetime import datetime
from typing import List, Optional

from core.cache import CacheService
from core.config import settings
from core.exceptions import UnsupportedAsset
from models.readings import MarketStatus, PriceHistory, StockQuote
from services.aggregator import BaseAggregator, history_ttl
from services.calculations import MARKET_STATUS_MESSAGES, get_market_status, is_market_hours
from services.providers import FinnhubProvider, StockProvider, YahooProvider
from services.usage_tracker import UsageTracker


def default_stock_providers(usage: Optional[UsageTracker] = None) -> List[StockProvider]:
    return [
        YahooProvider(usage=usage),
        FinnhubProvider(
            api_key=settings.finnhub_api_key,
            timeout_seconds=settings.provider_timeout_seconds,
            usage=usage,
        ),
    ]


class StockService(BaseAggregator):
    """Stock quotes, history and US session status."""

    domain = "stock"

    def __init__(
        self,
        cache: CacheService,
        providers: Optional[List[StockProvider]] = None,
        market_ttl: Optional[int] = None,
        after_hours_ttl: Optional[int] = None,
    ):
        super().__init__(cache, providers if providers is not None else default_stock_providers())
        self.market_ttl = market_ttl if market_ttl is not None else settings.stock_cache_ttl
        self.after_hours_ttl = after_hours_ttl if after_hours_ttl is not None else settings.stock_after_hours_cache_ttl

    @property
    def ttl(self) -> int:
        return self.market_ttl if is_market_hours() else self.after_hours_ttl

    @staticmethod
    def quote_key(symbol: str) -> str:
        return f"stock:quote:{symbol.upper()}"

    def is_supported(self, symbol: str) -> bool:
        return any(p.is_supported(symbol) for p in self.providers)

    def get_supported_symbols(self) -> List[str]:
        symbols: List[str] = []
        for provider in self.providers:
            symbols.extend(s for s in provider.supported_symbols() if s not in symbols)
        return symbols

    def get_market_status(self, now: Optional[datetime] = None) -> dict:
        status = get_market_status(now)
        return {
            "status": status.value,
            "isOpen": status == MarketStatus.OPEN,
            "message": MARKET_STATUS_MESSAGES[status],
        }

    def _check(self, symbol: str) -> str:
        symbol = symbol.strip().upper()
        if not self.is_supported(symbol):
            raise UnsupportedAsset(f"Unsupported stock symbol: {symbol}", asset=symbol)
        return symbol

    async def get_quote(self, symbol: str) -> StockQuote:
        symbol = self._check(symbol)
        return await self._read_one(
            self.quote_key(symbol),
            self.ttl,
            lambda: self._first_success(f"{symbol} quote", lambda p: p.fetch_one(symbol)),
            StockQuote.from_dict,
        )

    async def get_quotes(self, symbols: List[str]) -> List[StockQuote]:
        wanted = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        valid = [s for s in wanted if self.is_supported(s)]
        if not valid:
            raise UnsupportedAsset("No valid stock symbols provided", asset=",".join(wanted))

        return await self._read_many(
            valid,
            f"stock:quotes:{','.join(valid)}",
            self.quote_key,
            self.ttl,
            lambda: self._first_success(f"quotes for {len(valid)} symbols", lambda p: p.fetch_many(valid)),
            StockQuote.from_dict,
        )

    async def get_history(self, symbol: str, days: int = 30) -> PriceHistory:
        symbol = self._check(symbol)
        return await self._read_one(
            f"stock:history:{symbol}:{days}",
            history_ttl(days),
            lambda: self._first_success(f"{symbol} {days}d history", lambda p: p.fetch_history(symbol, days)),
            PriceHistory.from_dict,
        )
