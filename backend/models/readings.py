"""
Reading Models - normalized live values produced by provider adapters.

``to_dict`` is both the API shape and the cache serialization format, so
``from_dict(to_dict(x))`` must restore an equal reading.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a 'Z' suffix so browsers convert it correctly."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_utc_iso(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class MarketStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    PRE_MARKET = "pre-market"
    AFTER_HOURS = "after-hours"


class StaleMixin:
    """Stale-annotation helpers shared by every reading type."""

    stale: bool
    warning: Optional[str]

    def as_stale(self, warning: str):
        return replace(self, stale=True, warning=warning)

    def _with_flags(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.stale:
            data["stale"] = True
        if self.warning:
            data["warning"] = self.warning
        return data


@dataclass
class CryptoPrice(StaleMixin):
    """Spot price for a crypto asset in USD."""
    symbol: str
    price: float
    change_24h: float
    last_update: datetime
    source: str
    stale: bool = False
    warning: Optional[str] = None

    @property
    def value(self) -> float:
        return self.price

    def to_dict(self) -> dict:
        return self._with_flags({
            "symbol": self.symbol,
            "price": self.price,
            "change24h": self.change_24h,
            "lastUpdate": to_utc_iso(self.last_update),
            "source": self.source,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "CryptoPrice":
        return cls(
            symbol=data["symbol"],
            price=float(data["price"]),
            change_24h=float(data.get("change24h", 0.0)),
            last_update=parse_utc_iso(data.get("lastUpdate")) or utc_now(),
            source=data["source"],
            stale=bool(data.get("stale", False)),
            warning=data.get("warning"),
        )


@dataclass
class StockQuote(StaleMixin):
    """Equity quote with session status."""
    symbol: str
    price: float
    change: float
    change_percent: float
    market_status: MarketStatus
    last_update: datetime
    source: str
    stale: bool = False
    warning: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.market_status, str):
            self.market_status = MarketStatus(self.market_status)

    @property
    def value(self) -> float:
        return self.price

    def to_dict(self) -> dict:
        return self._with_flags({
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
            "marketStatus": self.market_status.value,
            "lastUpdate": to_utc_iso(self.last_update),
            "source": self.source,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "StockQuote":
        return cls(
            symbol=data["symbol"],
            price=float(data["price"]),
            change=float(data.get("change", 0.0)),
            change_percent=float(data.get("changePercent", 0.0)),
            market_status=data.get("marketStatus", MarketStatus.CLOSED.value),
            last_update=parse_utc_iso(data.get("lastUpdate")) or utc_now(),
            source=data["source"],
            stale=bool(data.get("stale", False)),
            warning=data.get("warning"),
        )


@dataclass
class WeatherReading(StaleMixin):
    """Current conditions for a city, temperatures in Fahrenheit."""
    city: str
    temperature: float
    humidity: float
    wind_speed: float
    condition: str
    last_update: datetime
    source: str
    forecast_24h: List[Dict[str, Any]] = field(default_factory=list)
    stale: bool = False
    warning: Optional[str] = None

    @property
    def value(self) -> float:
        return self.temperature

    def to_dict(self) -> dict:
        return self._with_flags({
            "city": self.city,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "windSpeed": self.wind_speed,
            "condition": self.condition,
            "forecast24h": list(self.forecast_24h),
            "lastUpdate": to_utc_iso(self.last_update),
            "source": self.source,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "WeatherReading":
        return cls(
            city=data["city"],
            temperature=float(data["temperature"]),
            humidity=float(data.get("humidity", 0.0)),
            wind_speed=float(data.get("windSpeed", 0.0)),
            condition=data.get("condition", "Unknown"),
            last_update=parse_utc_iso(data.get("lastUpdate")) or utc_now(),
            source=data["source"],
            forecast_24h=list(data.get("forecast24h", [])),
            stale=bool(data.get("stale", False)),
            warning=data.get("warning"),
        )


@dataclass
class HistoryPoint:
    timestamp: datetime
    price: float
    volume: Optional[float] = None

    def to_dict(self) -> dict:
        data = {"timestamp": to_utc_iso(self.timestamp), "price": self.price}
        if self.volume is not None:
            data["volume"] = self.volume
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryPoint":
        volume = data.get("volume")
        return cls(
            timestamp=parse_utc_iso(data["timestamp"]),
            price=float(data["price"]),
            volume=float(volume) if volume is not None else None,
        )


@dataclass
class PriceHistory(StaleMixin):
    """Price series for a crypto asset or stock."""
    symbol: str
    data: List[HistoryPoint]
    source: str
    stale: bool = False
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return self._with_flags({
            "symbol": self.symbol,
            "data": [p.to_dict() for p in self.data],
            "source": self.source,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "PriceHistory":
        return cls(
            symbol=data["symbol"],
            data=[HistoryPoint.from_dict(p) for p in data.get("data", [])],
            source=data["source"],
            stale=bool(data.get("stale", False)),
            warning=data.get("warning"),
        )
