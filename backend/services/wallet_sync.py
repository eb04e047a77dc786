"""
Wallet Sync - imports Polymarket wallet positions as tracked bets.

Positions come from the public data API. Titles are run through the bet
parser so crypto/stock/weather markets get a live feed; anything else is
stored untracked.
"""
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from core.cache import CacheService
from core.config import settings
from core.exceptions import NoDataAvailable, ProviderError, UnsupportedAsset, ValidationError
from models.bet import Bet, BetPosition, BetType, CATEGORY_BY_TYPE
from models.readings import parse_utc_iso, utc_now
from services.bet_parser import CRYPTO_KEYWORDS, parse_bet_text
from services.bet_store import BetStore
from services.crypto_service import CryptoService
from services.providers.base import BaseProvider
from services.usage_tracker import UsageTracker

WALLET_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")

# "Bitcoin Up or Down - October 20, 2PM ET"
UP_OR_DOWN = re.compile(r"^\s*(\w+)\s+up\s+or\s+down\b", re.IGNORECASE)

OUTCOME_POSITIONS = {
    "YES": BetPosition.YES,
    "UP": BetPosition.YES,
    "NO": BetPosition.NO,
    "DOWN": BetPosition.NO,
}


def validate_wallet_address(address: str) -> str:
    if not WALLET_ADDRESS.match(address or ""):
        raise ValidationError("Invalid wallet address", {"walletAddress": address})
    return address


class PolymarketDataClient(BaseProvider):
    """Polymarket data API (positions and portfolio value)."""

    name = "polymarket"
    label = "Polymarket"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.polymarket_data_api).rstrip("/")

    async def fetch_positions(self, address: str) -> List[dict]:
        data = await self._get_json(
            f"{self.base_url}/positions",
            params={"user": address, "limit": "100"},
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise ProviderError(f"{self.label} returned an unexpected payload", provider=self.name)
        return data

    async def fetch_value(self, address: str) -> float:
        data = await self._get_json(f"{self.base_url}/value", params={"user": address})
        if not data:
            return 0.0
        if not isinstance(data, list):
            raise ProviderError(f"{self.label} returned an unexpected payload", provider=self.name)
        self.require(data[0], context=address)
        return self.to_float(data[0].get("value") or 0, "value")


class WalletSyncService:
    """Fetches wallet positions and mirrors them into the bet store."""

    def __init__(
        self,
        store: BetStore,
        cache: CacheService,
        crypto: CryptoService,
        client: Optional[PolymarketDataClient] = None,
        ttl: Optional[int] = None,
        usage: Optional[UsageTracker] = None,
    ):
        self.store = store
        self.cache = cache
        self.crypto = crypto
        self.client = client or PolymarketDataClient(
            timeout_seconds=settings.provider_timeout_seconds,
            usage=usage,
        )
        self.ttl = ttl if ttl is not None else settings.wallet_cache_ttl

    async def close(self):
        await self.client.close()

    async def get_positions(self, address: str) -> List[dict]:
        address = validate_wallet_address(address)
        result = await self.cache.get_or_fetch(
            f"polymarket:positions:{address.lower()}",
            lambda: self.client.fetch_positions(address),
            self.ttl,
        )
        return result.data

    async def get_portfolio_value(self, address: str) -> float:
        return await self.client.fetch_value(validate_wallet_address(address))

    async def sync(self, address: str) -> Dict[str, Any]:
        """Create bets for new positions and refresh the snapshot of known ones."""
        positions = await self.get_positions(address)

        created = 0
        updated = 0
        for position in positions:
            condition_id = position.get("conditionId")
            if not condition_id:
                continue

            existing = self.store.find_by_condition_id(condition_id)
            if existing:
                value = existing.current_value if existing.is_tracked else _float(position.get("curPrice"))
                if self.store.record_snapshot(
                    existing.id,
                    current_value=value,
                    pnl=_float(position.get("cashPnl")),
                    current_odds=_float(position.get("curPrice")),
                ):
                    updated += 1
                continue

            self.store.create(await self._bet_from_position(position))
            created += 1

        logger.info(f"Synced wallet {address}: {created} new, {updated} updated positions")
        return {"syncedPositions": created, "updatedPositions": updated, "walletAddress": address}

    # ========================================================================
    # Helper Methods
    # ========================================================================

    async def _bet_from_position(self, position: dict) -> Bet:
        title = position.get("title") or position.get("slug") or "Polymarket position"
        bet_type, asset, threshold, unit = await self._classify(title)

        resolve_date = _parse_date(position.get("endDate"))
        return Bet(
            market=title,
            position=OUTCOME_POSITIONS.get(str(position.get("outcome", "")).upper(), BetPosition.YES),
            amount=_float(position.get("initialValue")) or 0.0,
            shares=_float(position.get("size")) or 0.0,
            entry_odds=_float(position.get("avgPrice")) or 0.0,
            resolve_date=resolve_date,
            type=bet_type,
            asset=asset,
            threshold=threshold,
            threshold_unit=unit,
            current_odds=_float(position.get("curPrice")),
            current_value=None if bet_type else _float(position.get("curPrice")),
            pnl=_float(position.get("cashPnl")),
            category=CATEGORY_BY_TYPE.get(bet_type, "Polymarket") if bet_type else "Polymarket",
            data_source="polymarket",
            polymarket_condition_id=position.get("conditionId"),
            polymarket_slug=position.get("slug"),
            polymarket_event_slug=position.get("eventSlug"),
        )

    async def _classify(self, title: str) -> Tuple[Optional[BetType], str, float, str]:
        """(type, asset, threshold, unit) for a market title; untracked when nothing matches."""
        parsed = parse_bet_text(title)
        if parsed and parsed.type != BetType.SPORTS:
            return parsed.type, parsed.asset, parsed.threshold, parsed.threshold_unit

        match = UP_OR_DOWN.match(title)
        symbol = CRYPTO_KEYWORDS.get(match.group(1).lower()) if match else None
        if symbol:
            # The window's opening price is not published, so the price at sync time stands in
            try:
                price = await self.crypto.get_price(symbol)
                return BetType.CRYPTO, symbol, price.price, "USD"
            except (NoDataAvailable, ProviderError, UnsupportedAsset) as e:
                logger.warning(f"Could not price {symbol} for '{title}': {e}")

        return None, "", 0.0, "USD"


def _float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_date(value: Any):
    try:
        parsed = parse_utc_iso(value)
    except ValueError:
        parsed = None
    return parsed or utc_now() + timedelta(days=30)
