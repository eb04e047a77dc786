"""
Bet Status Service - judges tracked bets against live values.
"""
from typing import Any, Dict, Optional

from loguru import logger

from core.exceptions import NoDataAvailable, ProviderError, UnsupportedAsset, ValidationError
from models.bet import Bet, BetOutcome, BetType
from models.readings import to_utc_iso, utc_now
from services.bet_store import BetStore
from services.calculations import calculate_distance, calculate_pnl, determine_status
from services.crypto_service import CryptoService
from services.stock_service import StockService
from services.weather_service import WeatherService


class BetStatusService:
    """Current value, distance, status and P&L for bets, plus portfolio analytics."""

    def __init__(
        self,
        store: BetStore,
        crypto: CryptoService,
        stocks: StockService,
        weather: WeatherService,
    ):
        self.store = store
        self.crypto = crypto
        self.stocks = stocks
        self.weather = weather

    async def get_current_value(self, bet: Bet) -> float:
        """Price or temperature the bet is judged against."""
        if bet.type == BetType.CRYPTO:
            return (await self.crypto.get_price(bet.asset)).price
        if bet.type == BetType.STOCK:
            return (await self.stocks.get_quote(bet.asset)).price
        if bet.type == BetType.WEATHER:
            return (await self.weather.get_current_weather(bet.asset.replace("_", " "))).temperature
        raise ValidationError(f"Unsupported bet type: {bet.type.value if bet.type else None}")

    def evaluate(self, bet: Bet, current_value: float) -> Dict[str, Any]:
        """Status response body for ``bet`` at ``current_value``."""
        distance = calculate_distance(current_value, bet.threshold, bet.position)
        status = determine_status(current_value, bet.threshold, bet.position)
        pnl = calculate_pnl(bet.shares, bet.odds, bet.amount)

        return {
            "betId": bet.id,
            "market": bet.market,
            "position": bet.position.value,
            "threshold": bet.threshold,
            "thresholdUnit": bet.threshold_unit,
            "currentValue": current_value,
            "distance": {
                "value": distance.distance_value,
                "percent": distance.distance_percent,
            },
            "status": status,
            "isWinning": distance.is_winning,
            "pnl": {"invested": bet.amount, **pnl.to_dict()},
            "resolveDate": to_utc_iso(bet.resolve_date),
            "lastUpdate": to_utc_iso(utc_now()),
        }

    async def get_status(self, bet_id: str) -> Dict[str, Any]:
        bet = self.store.get(bet_id)
        try:
            current_value = await self.get_current_value(bet)
        except (NoDataAvailable, ProviderError, UnsupportedAsset) as e:
            raise NoDataAvailable(
                f"Unable to fetch current value for {bet.asset}",
                details={"bet_id": bet.id, "reason": str(e)},
            ) from e

        result = self.evaluate(bet, current_value)
        self.store.record_snapshot(bet.id, current_value, pnl=result["pnl"]["unrealizedPnL"])
        return result

    async def _safe_value(self, bet: Bet) -> Optional[float]:
        if not bet.is_tracked:
            return None
        try:
            return await self.get_current_value(bet)
        except (NoDataAvailable, ProviderError, UnsupportedAsset, ValidationError) as e:
            logger.warning(f"Could not fetch current value for bet {bet.id}: {e}")
            return None

    # ========================================================================
    # Analytics
    # ========================================================================

    async def portfolio(self) -> Dict[str, Any]:
        """Open-position summary; bets whose value cannot be fetched count only as invested."""
        bets = self.store.unresolved()

        total_invested = 0.0
        current_value = 0.0
        winning = 0
        losing = 0

        for bet in bets:
            total_invested += bet.amount
            value = await self._safe_value(bet)
            if value is None:
                continue

            if determine_status(value, bet.threshold, bet.position) == "winning":
                winning += 1
            else:
                losing += 1
            current_value += calculate_pnl(bet.shares, bet.odds, bet.amount).current_value

        total = len(bets)
        return {
            "totalInvested": total_invested,
            "currentValue": current_value,
            "unrealizedPnL": current_value - total_invested,
            "winningBets": winning,
            "losingBets": losing,
            "totalBets": total,
            "winRate": (winning / total * 100) if total > 0 else 0,
        }

    def performance(self, limit: int = 50) -> Dict[str, Any]:
        """Realized results over the most recently resolved bets."""
        resolved = self.store.resolved()[:limit]
        won = [b for b in resolved if b.outcome == BetOutcome.WON]
        lost = [b for b in resolved if b.outcome == BetOutcome.LOST]

        # A winning share pays 1; a losing bet forfeits the stake
        total_won = sum(b.shares for b in won)
        total_lost = sum(b.amount for b in lost)

        return {
            "totalResolved": len(resolved),
            "won": len(won),
            "lost": len(lost),
            "winRate": (len(won) / len(resolved) * 100) if resolved else 0,
            "totalWon": total_won,
            "totalLost": total_lost,
            "netProfit": total_won - total_lost,
            "recentBets": [b.to_dict() for b in resolved[:10]],
        }

    def by_type(self) -> list:
        groups: Dict[Optional[str], Dict[str, Any]] = {}
        for bet in self.store.all():
            key = bet.type.value if bet.type else None
            group = groups.setdefault(key, {"type": key, "count": 0, "totalInvested": 0.0})
            group["count"] += 1
            group["totalInvested"] += bet.amount
        return list(groups.values())
