"""
Bet status, P&L and market-session calculations.

All functions are pure; inputs are assumed numeric and finite.
"""
from datetime import datetime, time, timezone
from typing import List, Optional, Dict, Any
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from models.bet import BetPosition, DistanceResult, PnLResult
from models.readings import HistoryPoint, MarketStatus

EASTERN = ZoneInfo("America/New_York")

PRE_MARKET_OPEN = time(4, 0)
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)
AFTER_HOURS_CLOSE = time(20, 0)


def calculate_distance(current: float, threshold: float, position: BetPosition) -> DistanceResult:
    """
    Signed distance from the threshold in the bet's favour.

    Equal-to-threshold is losing for both positions. ``distance_percent`` is
    None when ``threshold`` is zero.
    """
    if BetPosition(position) == BetPosition.YES:
        distance_value = current - threshold
        is_winning = current > threshold
    else:
        distance_value = threshold - current
        is_winning = current < threshold

    distance_percent = (distance_value / threshold) * 100 if threshold != 0 else None
    return DistanceResult(
        distance_value=distance_value,
        distance_percent=distance_percent,
        is_winning=is_winning,
    )


def determine_status(current: float, threshold: float, position: BetPosition) -> str:
    """'winning' or 'losing'; there is no neutral state."""
    if BetPosition(position) == BetPosition.YES:
        return "winning" if current > threshold else "losing"
    return "winning" if current < threshold else "losing"


def calculate_pnl(shares: float, current_odds: float, invested: float) -> PnLResult:
    current_value = shares * current_odds
    unrealized_pnl = current_value - invested
    # Each share pays out 1 if the held outcome resolves true
    potential_payout = shares * 1
    roi = (unrealized_pnl / invested) * 100 if invested > 0 else 0

    return PnLResult(
        current_value=current_value,
        unrealized_pnl=unrealized_pnl,
        potential_payout=potential_payout,
        roi=roi,
    )


def _eastern(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(EASTERN)


def get_market_status(now: Optional[datetime] = None) -> MarketStatus:
    """US equity session for ``now`` (UTC, defaults to the current time)."""
    et = _eastern(now)
    if et.weekday() >= 5:
        return MarketStatus.CLOSED

    t = et.time()
    if PRE_MARKET_OPEN <= t < MARKET_OPEN:
        return MarketStatus.PRE_MARKET
    if MARKET_OPEN <= t < MARKET_CLOSE:
        return MarketStatus.OPEN
    if MARKET_CLOSE <= t < AFTER_HOURS_CLOSE:
        return MarketStatus.AFTER_HOURS
    return MarketStatus.CLOSED


def is_market_hours(now: Optional[datetime] = None) -> bool:
    return get_market_status(now) == MarketStatus.OPEN


MARKET_STATUS_MESSAGES = {
    MarketStatus.OPEN: "US markets are currently open (9:30 AM - 4:00 PM ET)",
    MarketStatus.PRE_MARKET: "Pre-market trading session (4:00 AM - 9:30 AM ET)",
    MarketStatus.AFTER_HOURS: "After-hours trading session (4:00 PM - 8:00 PM ET)",
    MarketStatus.CLOSED: "US markets are closed",
}


def summarize_history(points: List[HistoryPoint]) -> Dict[str, Any]:
    """Change, log-return volatility and range over a price series."""
    if len(points) < 2:
        return {"changePercent": None, "volatility": None, "high": None, "low": None}

    df = pd.DataFrame([{"timestamp": p.timestamp, "price": p.price} for p in points])
    df = df.sort_values("timestamp").set_index("timestamp")
    prices = df["price"].astype(float)

    first, last = prices.iloc[0], prices.iloc[-1]
    returns = np.log(prices / prices.shift(1)).dropna()

    return {
        "changePercent": float((last - first) / first * 100) if first else None,
        "volatility": float(returns.std()) if len(returns) > 1 else None,
        "high": float(prices.max()),
        "low": float(prices.min()),
    }
