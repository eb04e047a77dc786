"""
Live Broadcaster - periodic price refresh pushed to WebSocket subscribers.

Each tick fetches every distinct asset behind an unresolved bet in one bulk
call per domain, publishes the readings, then publishes a status update per
bet and writes the new value back onto it.
"""
import asyncio
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger

from core.config import settings
from core.exceptions import TrackerError
from models.bet import Bet, BetType
from models.readings import to_utc_iso, utc_now
from services.bet_store import BetStore
from services.calculations import calculate_distance, calculate_pnl, determine_status
from services.crypto_service import CryptoService
from services.providers.weather import normalize_city
from services.stock_service import StockService
from services.weather_service import WeatherService


class Publisher(Protocol):
    async def broadcast_all(self, event: str, data: dict) -> None: ...

    async def broadcast(self, channel: str, event: str, data: dict) -> None: ...


class LiveBroadcaster:
    """Runs the update loop as a cancellable asyncio task."""

    def __init__(
        self,
        store: BetStore,
        crypto: CryptoService,
        stocks: StockService,
        weather: WeatherService,
        publisher: Publisher,
        interval_seconds: Optional[float] = None,
    ):
        self.store = store
        self.crypto = crypto
        self.stocks = stocks
        self.weather = weather
        self.publisher = publisher
        self.interval_seconds = interval_seconds or settings.broadcast_interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Live broadcaster started ({self.interval_seconds:.0f}s interval)")

    async def stop(self):
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Live broadcaster stopped")

    async def _run(self):
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception as e:
                logger.exception(f"Broadcast tick failed: {e}")

    # ========================================================================
    # One pass
    # ========================================================================

    async def tick(self) -> Dict[str, Any]:
        """Refresh every tracked asset once; returns a summary of what was sent."""
        bets = [b for b in self.store.unresolved() if b.is_tracked]
        summary: Dict[str, Any] = {"bets": len(bets), "readings": 0, "betUpdates": 0, "failedDomains": []}

        groups: Dict[BetType, List[Bet]] = {}
        for bet in bets:
            groups.setdefault(bet.type, []).append(bet)

        refreshers = (
            (BetType.CRYPTO, self._refresh_crypto),
            (BetType.STOCK, self._refresh_stocks),
            (BetType.WEATHER, self._refresh_weather),
        )
        for bet_type, refresh in refreshers:
            group = groups.get(bet_type)
            if not group:
                continue

            try:
                values = await refresh(sorted({self._asset_key(b) for b in group}))
            except TrackerError as e:
                logger.error(f"Failed to fetch {bet_type.value} data for live updates: {e}")
                summary["failedDomains"].append(bet_type.value)
                continue
            except Exception as e:
                logger.exception(f"Unexpected error refreshing {bet_type.value} data for live updates: {e}")
                summary["failedDomains"].append(bet_type.value)
                continue

            summary["readings"] += len(values)
            for bet in group:
                value = values.get(self._asset_key(bet))
                if value is None:
                    continue
                await self._publish_bet(bet, value)
                summary["betUpdates"] += 1

        logger.debug(f"Live updates sent: {summary}")
        return summary

    @staticmethod
    def _asset_key(bet: Bet) -> str:
        if bet.type == BetType.WEATHER:
            return normalize_city(bet.asset.replace("_", " "))
        return bet.asset.upper()

    async def _emit(self, event: str, channel: str, data: dict):
        await self.publisher.broadcast_all(event, data)
        await self.publisher.broadcast(channel, event, data)

    async def _refresh_crypto(self, symbols: List[str]) -> Dict[str, float]:
        prices = await self.crypto.get_prices(symbols)
        for price in prices:
            await self._emit("price-update", f"price:{price.symbol}", {
                "type": "crypto",
                "symbol": price.symbol,
                "price": price.price,
                "change24h": price.change_24h,
                "timestamp": to_utc_iso(utc_now()),
            })
        return {p.symbol: p.price for p in prices}

    async def _refresh_stocks(self, symbols: List[str]) -> Dict[str, float]:
        quotes = await self.stocks.get_quotes(symbols)
        for quote in quotes:
            await self._emit("price-update", f"price:{quote.symbol}", {
                "type": "stock",
                "symbol": quote.symbol,
                "price": quote.price,
                "change": quote.change_percent,
                "marketStatus": quote.market_status.value,
                "timestamp": to_utc_iso(utc_now()),
            })
        return {q.symbol: q.price for q in quotes}

    async def _refresh_weather(self, cities: List[str]) -> Dict[str, float]:
        readings = await self.weather.get_current_weather_many(cities)
        for reading in readings:
            await self._emit("weather-update", f"price:{reading.city}", {
                "type": "weather",
                "city": reading.city,
                "temperature": reading.temperature,
                "condition": reading.condition,
                "timestamp": to_utc_iso(utc_now()),
            })
        return {r.city: r.temperature for r in readings}

    async def _publish_bet(self, bet: Bet, value: float):
        distance = calculate_distance(value, bet.threshold, bet.position)
        await self.publisher.broadcast(f"bet:{bet.id}", "bet-update", {
            "betId": bet.id,
            "currentValue": value,
            "distance": distance.distance_percent,
            "isWinning": distance.is_winning,
            "status": determine_status(value, bet.threshold, bet.position),
            "timestamp": to_utc_iso(utc_now()),
        })

        pnl = calculate_pnl(bet.shares, bet.odds, bet.amount)
        self.store.record_snapshot(bet.id, value, pnl=pnl.unrealized_pnl)
