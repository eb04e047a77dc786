"""
Stock quote providers.
Supports:
- Yahoo Finance (primary, keyless quote and chart endpoints)
- Finnhub (fallback, requires an API key)
"""
import time
from typing import List

from loguru import logger

from core.exceptions import ProviderError, UnsupportedAsset
from models.readings import StockQuote, PriceHistory, HistoryPoint, MarketStatus, utc_now
from services.calculations import get_market_status
from .base import BaseProvider

SUPPORTED_SYMBOLS = [
    "GOOGL", "GOOG", "AAPL", "TSLA", "NVDA", "MSFT", "AMZN", "META", "NFLX", "AMD",
    "INTC", "COIN", "PYPL", "SQ", "SHOP", "UBER", "LYFT", "ABNB", "SNAP", "TWTR",
    "PINS", "ROKU", "ZM", "DOCU", "CRM", "ORCL", "IBM", "CSCO", "ADBE", "NOW",
    "SNOW", "PLTR", "SPY", "QQQ", "DIA", "IWM", "VTI", "VOO",
]

YAHOO_MARKET_STATES = {
    "REGULAR": MarketStatus.OPEN,
    "PRE": MarketStatus.PRE_MARKET,
    "PREPRE": MarketStatus.PRE_MARKET,
    "POST": MarketStatus.AFTER_HOURS,
    "POSTPOST": MarketStatus.AFTER_HOURS,
    "CLOSED": MarketStatus.CLOSED,
}


class StockProvider(BaseProvider):
    """Capability set shared by stock providers."""

    def is_supported(self, symbol: str) -> bool:
        return symbol.upper() in SUPPORTED_SYMBOLS

    def supported_symbols(self) -> List[str]:
        return list(SUPPORTED_SYMBOLS)

    def _check(self, symbol: str) -> str:
        symbol = symbol.upper()
        if symbol not in SUPPORTED_SYMBOLS:
            raise UnsupportedAsset(f"Unsupported stock symbol: {symbol}", asset=symbol)
        return symbol

    async def fetch_one(self, symbol: str) -> StockQuote:
        raise NotImplementedError

    async def fetch_many(self, symbols: List[str]) -> List[StockQuote]:
        raise NotImplementedError

    async def fetch_history(self, symbol: str, days: int = 30) -> PriceHistory:
        raise NotImplementedError


class YahooProvider(StockProvider):
    """Yahoo Finance unofficial quote API."""

    name = "yahoo"
    label = "Yahoo Finance"
    base_url = "https://query1.finance.yahoo.com"
    timeout_seconds = 15.0

    HEADERS = {"User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"}

    def _normalize_quote(self, quote: dict) -> StockQuote:
        self.require(quote, "symbol", "regularMarketPrice")
        return StockQuote(
            symbol=quote["symbol"],
            price=self.to_float(quote["regularMarketPrice"], "regularMarketPrice"),
            change=self.to_float(quote.get("regularMarketChange") or 0, "regularMarketChange"),
            change_percent=self.to_float(
                quote.get("regularMarketChangePercent") or 0, "regularMarketChangePercent"
            ),
            market_status=YAHOO_MARKET_STATES.get(quote.get("marketState"), MarketStatus.CLOSED),
            last_update=utc_now(),
            source=self.name,
        )

    async def _quotes(self, symbols: List[str]) -> List[dict]:
        data = await self._get_json(
            f"{self.base_url}/v7/finance/quote",
            params={"symbols": ",".join(symbols)},
            headers=self.HEADERS,
        )
        self.require(data, "quoteResponse")
        response = data["quoteResponse"]
        if response.get("error"):
            raise ProviderError(f"{self.label} error: {response['error']}", provider=self.name)
        return response.get("result") or []

    async def fetch_one(self, symbol: str) -> StockQuote:
        symbol = self._check(symbol)
        result = await self._quotes([symbol])
        if not result:
            raise ProviderError(f"No data returned for {symbol}", provider=self.name)
        return self._normalize_quote(result[0])

    async def fetch_many(self, symbols: List[str]) -> List[StockQuote]:
        valid = [s.upper() for s in symbols if self.is_supported(s)]
        if not valid:
            raise UnsupportedAsset("No valid stock symbols provided", asset=",".join(symbols))
        return [self._normalize_quote(q) for q in await self._quotes(valid)]

    async def fetch_history(self, symbol: str, days: int = 30) -> PriceHistory:
        symbol = self._check(symbol)
        interval = "1h" if days <= 5 else "1d"
        if days <= 5:
            range_ = "5d"
        elif days <= 30:
            range_ = "1mo"
        elif days <= 90:
            range_ = "3mo"
        else:
            range_ = "1y"

        data = await self._get_json(
            f"{self.base_url}/v8/finance/chart/{symbol}",
            params={"interval": interval, "range": range_},
            headers=self.HEADERS,
        )
        self.require(data, "chart", context=symbol)
        self.require(data["chart"], "result", context=symbol)
        results = data["chart"]["result"]
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise ProviderError(f"No chart data returned for {symbol}", provider=self.name)

        chart = results[0]
        try:
            quote = chart["indicators"]["quote"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.label} sent a chart without quotes for {symbol}", provider=self.name) from e
        timestamps = self.require_row(chart.get("timestamp") or [], 0, "timestamp")
        closes = self.require_row(quote.get("close") or [], 0, "close")
        volumes = self.require_row(quote.get("volume") or [], 0, "volume")

        points = []
        for i, ts in enumerate(timestamps):
            close = closes[i] if i < len(closes) else None
            # Yahoo pads non-trading slots with nulls
            if close is None:
                continue
            price = self.to_float(close, "close")
            if price <= 0:
                continue
            volume = volumes[i] if i < len(volumes) else None
            points.append(HistoryPoint(
                timestamp=self.to_timestamp(ts, "timestamp"),
                price=price,
                volume=self.to_float(volume, "volume") if volume is not None else None,
            ))
        return PriceHistory(symbol=symbol, data=points, source=self.name)


class FinnhubProvider(StockProvider):
    """Finnhub REST API; one call per symbol."""

    name = "finnhub"
    label = "Finnhub"
    base_url = "https://finnhub.io/api/v1"
    requires_api_key = True

    async def fetch_one(self, symbol: str) -> StockQuote:
        symbol = self._check(symbol)
        data = await self._get_json(
            f"{self.base_url}/quote",
            params={"symbol": symbol, "token": self.api_key},
        )
        if not isinstance(data, dict) or not data.get("c"):
            raise ProviderError(f"No data returned for {symbol}", provider=self.name)

        return StockQuote(
            symbol=symbol,
            price=self.to_float(data["c"], "c"),
            change=self.to_float(data.get("d") or 0, "d"),
            change_percent=self.to_float(data.get("dp") or 0, "dp"),
            market_status=get_market_status(),
            last_update=utc_now(),
            source=self.name,
        )

    async def fetch_many(self, symbols: List[str]) -> List[StockQuote]:
        quotes = []
        for symbol in symbols:
            try:
                quotes.append(await self.fetch_one(symbol))
            except (ProviderError, UnsupportedAsset) as e:
                logger.warning(f"Finnhub quote failed for {symbol}: {e}")

        if not quotes:
            raise ProviderError("Finnhub returned no quotes", provider=self.name)
        return quotes

    async def fetch_history(self, symbol: str, days: int = 30) -> PriceHistory:
        symbol = self._check(symbol)
        now = int(time.time())
        data = await self._get_json(
            f"{self.base_url}/stock/candle",
            params={
                "symbol": symbol,
                "resolution": "60" if days <= 5 else "D",
                "from": str(now - days * 86400),
                "to": str(now),
                "token": self.api_key,
            },
        )
        if not isinstance(data, dict) or data.get("s") != "ok":
            raise ProviderError(f"No candle data returned for {symbol}", provider=self.name)

        timestamps = self.require_row(data.get("t") or [], 0, "t")
        closes = self.require_row(data.get("c") or [], len(timestamps), "c")
        volumes = self.require_row(data.get("v") or [], 0, "v")
        points = [
            HistoryPoint(
                timestamp=self.to_timestamp(ts, "t"),
                price=self.to_float(closes[i], "c"),
                volume=self.to_float(volumes[i], "v") if i < len(volumes) and volumes[i] is not None else None,
            )
            for i, ts in enumerate(timestamps)
        ]
        return PriceHistory(symbol=symbol, data=points, source=self.name)
