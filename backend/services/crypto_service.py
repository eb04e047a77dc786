"""
Crypto Service - CoinGecko first, Binance as fallback.
"""
from typing import List, Optional

from core.cache import CacheService
from core.config import settings
from core.exceptions import UnsupportedAsset
from models.readings import CryptoPrice, PriceHistory
from services.aggregator import BaseAggregator, history_ttl
from services.providers import BinanceProvider, CoinGeckoProvider, CryptoProvider
from services.usage_tracker import UsageTracker


def default_crypto_providers(usage: Optional[UsageTracker] = None) -> List[CryptoProvider]:
    return [
        CoinGeckoProvider(
            api_key=settings.coingecko_api_key,
            timeout_seconds=settings.provider_timeout_seconds,
            usage=usage,
        ),
        BinanceProvider(timeout_seconds=settings.provider_timeout_seconds, usage=usage),
    ]


class CryptoService(BaseAggregator):
    """Crypto spot prices and history."""

    domain = "crypto"

    def __init__(
        self,
        cache: CacheService,
        providers: Optional[List[CryptoProvider]] = None,
        ttl: Optional[int] = None,
    ):
        super().__init__(cache, providers if providers is not None else default_crypto_providers())
        self.ttl = ttl if ttl is not None else settings.crypto_cache_ttl

    @staticmethod
    def price_key(symbol: str) -> str:
        return f"crypto:price:{symbol.upper()}"

    def is_supported(self, symbol: str) -> bool:
        return any(p.is_supported(symbol) for p in self.providers)

    def get_supported_symbols(self) -> List[str]:
        symbols: List[str] = []
        for provider in self.providers:
            symbols.extend(s for s in provider.supported_symbols() if s not in symbols)
        return symbols

    def _check(self, symbol: str) -> str:
        symbol = symbol.strip().upper()
        if not self.is_supported(symbol):
            raise UnsupportedAsset(f"Unsupported crypto symbol: {symbol}", asset=symbol)
        return symbol

    async def get_price(self, symbol: str) -> CryptoPrice:
        symbol = self._check(symbol)
        return await self._read_one(
            self.price_key(symbol),
            self.ttl,
            lambda: self._first_success(f"{symbol} price", lambda p: p.fetch_one(symbol)),
            CryptoPrice.from_dict,
        )

    async def get_prices(self, symbols: List[str]) -> List[CryptoPrice]:
        """Bulk prices; unsupported symbols are dropped, all-unsupported raises."""
        wanted = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        valid = [s for s in wanted if self.is_supported(s)]
        if not valid:
            raise UnsupportedAsset("No valid crypto symbols provided", asset=",".join(wanted))

        return await self._read_many(
            valid,
            f"crypto:prices:{','.join(valid)}",
            self.price_key,
            self.ttl,
            lambda: self._first_success(f"prices for {len(valid)} symbols", lambda p: p.fetch_many(valid)),
            CryptoPrice.from_dict,
        )

    async def get_history(self, symbol: str, days: int = 7) -> PriceHistory:
        symbol = self._check(symbol)
        return await self._read_one(
            f"crypto:history:{symbol}:{days}",
            history_ttl(days),
            lambda: self._first_success(f"{symbol} {days}d history", lambda p: p.fetch_history(symbol, days)),
            PriceHistory.from_dict,
        )
