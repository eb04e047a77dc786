"""
Crypto price providers.
Supports:
- CoinGecko (primary, batch prices and market charts)
- Binance (fallback, 24h tickers and klines)
"""
import json
from typing import Dict, List

from core.exceptions import ProviderError, UnsupportedAsset
from models.readings import CryptoPrice, PriceHistory, HistoryPoint, utc_now
from .base import BaseProvider


class CryptoProvider(BaseProvider):
    """Capability set shared by crypto providers."""

    SYMBOL_MAP: Dict[str, str] = {}

    def is_supported(self, symbol: str) -> bool:
        return symbol.upper() in self.SYMBOL_MAP

    def supported_symbols(self) -> List[str]:
        return list(self.SYMBOL_MAP)

    def _resolve(self, symbol: str) -> str:
        upstream = self.SYMBOL_MAP.get(symbol.upper())
        if not upstream:
            raise UnsupportedAsset(f"Unsupported crypto symbol: {symbol}", asset=symbol)
        return upstream

    def _resolve_many(self, symbols: List[str]) -> List[str]:
        resolved = [self.SYMBOL_MAP[s.upper()] for s in symbols if s.upper() in self.SYMBOL_MAP]
        if not resolved:
            raise UnsupportedAsset("No valid crypto symbols provided", asset=",".join(symbols))
        return resolved

    async def fetch_one(self, symbol: str) -> CryptoPrice:
        raise NotImplementedError

    async def fetch_many(self, symbols: List[str]) -> List[CryptoPrice]:
        raise NotImplementedError

    async def fetch_history(self, symbol: str, days: int = 7) -> PriceHistory:
        raise NotImplementedError


class CoinGeckoProvider(CryptoProvider):
    """CoinGecko public API."""

    name = "coingecko"
    label = "CoinGecko"
    base_url = "https://api.coingecko.com/api/v3"

    SYMBOL_MAP = {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "SOL": "solana",
        "MATIC": "matic-network",
        "DOGE": "dogecoin",
        "ADA": "cardano",
        "LINK": "chainlink",
        "AVAX": "avalanche-2",
        "DOT": "polkadot",
        "XRP": "ripple",
        "BNB": "binancecoin",
        "SHIB": "shiba-inu",
        "LTC": "litecoin",
        "UNI": "uniswap",
        "ATOM": "cosmos",
        "XLM": "stellar",
        "ALGO": "algorand",
        "FTM": "fantom",
        "NEAR": "near",
        "APT": "aptos",
    }

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    def _normalize_price(self, symbol: str, coin_data: dict) -> CryptoPrice:
        self.require(coin_data, "usd", context=symbol)
        return CryptoPrice(
            symbol=symbol.upper(),
            price=self.to_float(coin_data["usd"], "usd"),
            change_24h=self.to_float(coin_data.get("usd_24h_change") or 0, "usd_24h_change"),
            last_update=utc_now(),
            source=self.name,
        )

    async def _simple_price(self, coin_ids: List[str]) -> dict:
        return await self._get_json(
            f"{self.base_url}/simple/price",
            params={
                "ids": ",".join(coin_ids),
                "vs_currencies": "usd",
                "include_24hr_change": "true",
            },
            headers=self._headers(),
        )

    async def fetch_one(self, symbol: str) -> CryptoPrice:
        coin_id = self._resolve(symbol)
        data = await self._simple_price([coin_id])

        if not isinstance(data, dict) or not data.get(coin_id):
            raise ProviderError(f"No data returned for {symbol}", provider=self.name)
        return self._normalize_price(symbol, data[coin_id])

    async def fetch_many(self, symbols: List[str]) -> List[CryptoPrice]:
        coin_ids = self._resolve_many(symbols)
        data = await self._simple_price(coin_ids)

        if not isinstance(data, dict):
            raise ProviderError(f"{self.label} returned an unexpected payload", provider=self.name)

        id_to_symbol = {coin_id: sym for sym, coin_id in self.SYMBOL_MAP.items()}
        return [
            self._normalize_price(id_to_symbol.get(coin_id, coin_id.upper()), coin_data)
            for coin_id, coin_data in data.items()
        ]

    async def fetch_history(self, symbol: str, days: int = 7) -> PriceHistory:
        coin_id = self._resolve(symbol)
        data = await self._get_json(
            f"{self.base_url}/coins/{coin_id}/market_chart",
            params={"vs_currency": "usd", "days": str(days)},
            headers=self._headers(),
        )
        self.require(data, "prices", context=symbol)
        if not isinstance(data["prices"], list):
            raise ProviderError(f"{self.label} returned an unexpected payload for {symbol}", provider=self.name)

        volumes = {}
        for row in data.get("total_volumes") or []:
            ts, volume = self.require_row(row, 2, "total_volumes")[:2]
            if volume is not None:
                volumes[self.to_float(ts, "total_volumes.timestamp")] = self.to_float(volume, "total_volumes")

        points = []
        for row in data["prices"]:
            ts, price = self.require_row(row, 2, "prices")[:2]
            ts = self.to_float(ts, "prices.timestamp")
            points.append(HistoryPoint(
                timestamp=self.to_timestamp(ts, "prices.timestamp", millis=True),
                price=self.to_float(price, "price"),
                volume=volumes.get(ts),
            ))
        return PriceHistory(symbol=symbol.upper(), data=points, source=self.name)


class BinanceProvider(CryptoProvider):
    """Binance spot market data API."""

    name = "binance"
    label = "Binance"
    base_url = "https://api.binance.com/api/v3"

    SYMBOL_MAP = {
        "BTC": "BTCUSDT",
        "ETH": "ETHUSDT",
        "SOL": "SOLUSDT",
        "MATIC": "MATICUSDT",
        "DOGE": "DOGEUSDT",
        "ADA": "ADAUSDT",
        "LINK": "LINKUSDT",
        "AVAX": "AVAXUSDT",
        "DOT": "DOTUSDT",
        "XRP": "XRPUSDT",
        "BNB": "BNBUSDT",
        "SHIB": "SHIBUSDT",
        "LTC": "LTCUSDT",
        "UNI": "UNIUSDT",
        "ATOM": "ATOMUSDT",
        "XLM": "XLMUSDT",
        "ALGO": "ALGOUSDT",
        "FTM": "FTMUSDT",
        "NEAR": "NEARUSDT",
        "APT": "APTUSDT",
    }

    def _normalize_ticker(self, symbol: str, ticker: dict) -> CryptoPrice:
        self.require(ticker, "lastPrice", context=symbol)
        return CryptoPrice(
            symbol=symbol.upper(),
            price=self.to_float(ticker["lastPrice"], "lastPrice"),
            change_24h=self.to_float(ticker.get("priceChangePercent") or 0, "priceChangePercent"),
            last_update=utc_now(),
            source=self.name,
        )

    async def fetch_one(self, symbol: str) -> CryptoPrice:
        pair = self._resolve(symbol)
        data = await self._get_json(f"{self.base_url}/ticker/24hr", params={"symbol": pair})
        return self._normalize_ticker(symbol, data)

    async def fetch_many(self, symbols: List[str]) -> List[CryptoPrice]:
        pairs = self._resolve_many(symbols)
        data = await self._get_json(
            f"{self.base_url}/ticker/24hr",
            params={"symbols": json.dumps(pairs, separators=(",", ":"))},
        )
        if not isinstance(data, list):
            raise ProviderError(f"{self.label} returned an unexpected payload", provider=self.name)

        pair_to_symbol = {pair: sym for sym, pair in self.SYMBOL_MAP.items()}
        results = []
        for ticker in data:
            self.require(ticker, "symbol")
            pair = ticker["symbol"]
            results.append(self._normalize_ticker(pair_to_symbol.get(pair, pair.replace("USDT", "")), ticker))
        return results

    async def fetch_history(self, symbol: str, days: int = 7) -> PriceHistory:
        pair = self._resolve(symbol)
        if days <= 1:
            interval, limit = "1h", 24
        elif days <= 7:
            interval, limit = "4h", days * 6
        else:
            interval, limit = "1d", min(days, 1000)

        data = await self._get_json(
            f"{self.base_url}/klines",
            params={"symbol": pair, "interval": interval, "limit": str(limit)},
        )
        if not isinstance(data, list):
            raise ProviderError(f"{self.label} returned an unexpected payload", provider=self.name)

        points = []
        for row in data:
            # [open time, open, high, low, close, volume, ...]
            k = self.require_row(row, 6, "kline")
            points.append(HistoryPoint(
                timestamp=self.to_timestamp(k[0], "kline.openTime", millis=True),
                price=self.to_float(k[4], "kline.close"),
                volume=self.to_float(k[5], "kline.volume"),
            ))
        return PriceHistory(symbol=symbol.upper(), data=points, source=self.name)
