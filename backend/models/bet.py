"""
Bet Models - tracked prediction-market positions and computed results.
"""
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from .readings import utc_now, to_utc_iso, parse_utc_iso


class BetType(str, Enum):
    CRYPTO = "crypto"
    STOCK = "stock"
    WEATHER = "weather"
    SPORTS = "sports"


class BetPosition(str, Enum):
    YES = "YES"
    NO = "NO"


class BetOutcome(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


CATEGORY_BY_TYPE = {
    BetType.CRYPTO: "Crypto",
    BetType.STOCK: "Stocks",
    BetType.WEATHER: "Weather",
    BetType.SPORTS: "Sports",
}

DATA_SOURCE_BY_TYPE = {
    BetType.CRYPTO: "coingecko",
    BetType.STOCK: "yahoo",
    BetType.WEATHER: "open-meteo",
    BetType.SPORTS: "api-sports",
}

# Python attribute -> JSON key
_JSON_KEYS = {
    "id": "id",
    "market": "market",
    "type": "type",
    "asset": "asset",
    "position": "position",
    "amount": "amount",
    "shares": "shares",
    "entry_odds": "entryOdds",
    "threshold": "threshold",
    "threshold_unit": "thresholdUnit",
    "resolve_date": "resolveDate",
    "resolved": "resolved",
    "outcome": "outcome",
    "current_value": "currentValue",
    "current_odds": "currentOdds",
    "pnl": "pnl",
    "category": "category",
    "data_source": "dataSource",
    "polymarket_condition_id": "polymarketConditionId",
    "polymarket_slug": "polymarketSlug",
    "polymarket_event_slug": "polymarketEventSlug",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

_DATETIME_FIELDS = {"resolve_date", "created_at", "updated_at"}


@dataclass
class Bet:
    """A tracked position in a prediction market."""
    market: str
    position: BetPosition
    amount: float
    shares: float
    entry_odds: float
    resolve_date: datetime

    # What the bet is judged against (None for untracked wallet positions)
    type: Optional[BetType] = None
    asset: str = ""
    threshold: float = 0.0
    threshold_unit: str = "USD"

    # Lifecycle
    resolved: bool = False
    outcome: BetOutcome = BetOutcome.PENDING

    # Last computed snapshot
    current_value: Optional[float] = None
    current_odds: Optional[float] = None
    pnl: Optional[float] = None

    # Provenance
    category: str = "Other"
    data_source: str = "unknown"
    polymarket_condition_id: Optional[str] = None
    polymarket_slug: Optional[str] = None
    polymarket_event_slug: Optional[str] = None

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if isinstance(self.position, str):
            self.position = BetPosition(self.position.upper())
        if isinstance(self.type, str):
            self.type = BetType(self.type)
        if isinstance(self.outcome, str):
            self.outcome = BetOutcome(self.outcome)

    @property
    def is_tracked(self) -> bool:
        """True if a live feed can judge this bet."""
        return self.type in (BetType.CRYPTO, BetType.STOCK, BetType.WEATHER) and bool(self.asset)

    @property
    def odds(self) -> float:
        """Latest known market probability, falling back to the entry odds."""
        return self.current_odds if self.current_odds is not None else self.entry_odds

    def to_dict(self) -> dict:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _DATETIME_FIELDS:
                value = to_utc_iso(value)
            elif isinstance(value, Enum):
                value = value.value
            result[_JSON_KEYS[f.name]] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bet":
        kwargs = {}
        for name, key in _JSON_KEYS.items():
            if key not in data:
                continue
            value = data[key]
            if name in _DATETIME_FIELDS:
                value = parse_utc_iso(value)
            kwargs[name] = value
        return cls(**kwargs)


@dataclass
class ParsedBet:
    """Fields recovered from free-form market text."""
    type: BetType
    asset: str
    threshold: float
    threshold_unit: str
    position: BetPosition
    resolve_date: datetime
    confidence: str  # high, medium, low

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "asset": self.asset,
            "threshold": self.threshold,
            "thresholdUnit": self.threshold_unit,
            "position": self.position.value,
            "resolveDate": to_utc_iso(self.resolve_date),
            "confidence": self.confidence,
        }


@dataclass
class DistanceResult:
    distance_value: float
    distance_percent: Optional[float]
    is_winning: bool


@dataclass
class PnLResult:
    current_value: float
    unrealized_pnl: float
    potential_payout: float
    roi: float

    def to_dict(self) -> dict:
        return {
            "currentValue": self.current_value,
            "unrealizedPnL": self.unrealized_pnl,
            "potentialPayout": self.potential_payout,
            "roi": self.roi,
        }
