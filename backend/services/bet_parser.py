"""
Bet Parser - recover type, asset, threshold, date and side from market text.

"Will Bitcoin be above $110k before Feb 1?" -> crypto / BTC / 110000 / YES
"""
import calendar
import re
from datetime import datetime, timezone
from typing import Optional, Tuple

from models.bet import BetPosition, BetType, ParsedBet
from models.readings import utc_now
from services.providers.stocks import SUPPORTED_SYMBOLS
from services.providers.weather import normalize_city

CRYPTO_KEYWORDS = {
    "bitcoin": "BTC",
    "btc": "BTC",
    "ethereum": "ETH",
    "eth": "ETH",
    "solana": "SOL",
    "sol": "SOL",
    "polygon": "MATIC",
    "matic": "MATIC",
    "dogecoin": "DOGE",
    "doge": "DOGE",
    "cardano": "ADA",
    "ada": "ADA",
    "chainlink": "LINK",
    "link": "LINK",
    "avalanche": "AVAX",
    "avax": "AVAX",
    "polkadot": "DOT",
    "dot": "DOT",
    "ripple": "XRP",
    "xrp": "XRP",
}

WEATHER_KEYWORDS = ["temperature", "temp", "weather", "°f", "°c", "fahrenheit", "celsius"]

# Longest names first so "san francisco" wins over "sf"-style aliases
WEATHER_CITIES = sorted(
    [
        "new york", "nyc", "los angeles", "la", "chicago", "miami", "houston",
        "phoenix", "philadelphia", "san antonio", "san diego", "dallas", "san jose",
        "austin", "jacksonville", "fort worth", "columbus", "charlotte",
        "san francisco", "sf", "indianapolis", "seattle", "denver", "washington",
        "dc", "boston", "nashville", "detroit", "portland", "las vegas", "vegas",
        "atlanta",
    ],
    key=len,
    reverse=True,
)

SPORTS_TEAMS = [
    "lakers", "warriors", "celtics", "bulls", "heat", "nets", "knicks", "suns",
    "bucks", "sixers", "mavericks", "clippers",
]
SPORTS_KEYWORDS = ["nba", "nfl", "mlb", "nhl", "beat", "win", "score"]

NO_KEYWORDS = ["below", "under", "less than", "won't", "will not", "fail"]

# Tried in order; the first match wins
PRICE_PATTERNS = [
    re.compile(r"\$\s*([\d,]+(?:\.\d+)?)\s*[kK]\b"),
    re.compile(r"\$\s*([\d,]+(?:\.\d+)?)"),
    re.compile(r"([\d,]+(?:\.\d+)?)\s*[kK]\s*(?:dollars?|usd)", re.IGNORECASE),
    re.compile(r"([\d,]+(?:\.\d+)?)\s*°\s*[fF]"),
    re.compile(r"([\d,]+(?:\.\d+)?)\s*(?:dollars?|usd)\b", re.IGNORECASE),
]

MONTH_DAY = re.compile(r"\b([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b(?:,?\s*(\d{4}))?")
NUMERIC_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")

MONTHS = {name.lower(): i for i, name in enumerate(calendar.month_name) if name}
MONTHS.update({name.lower(): i for i, name in enumerate(calendar.month_abbr) if name})
MONTHS["sept"] = 9


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"(?<![\w]){re.escape(word)}(?![\w])", text) is not None


def _detect_asset(text: str, lower: str) -> Tuple[Optional[BetType], Optional[str], str, str]:
    """Returns (type, asset, threshold_unit, confidence)."""
    for keyword, symbol in CRYPTO_KEYWORDS.items():
        if _has_word(lower, keyword):
            return BetType.CRYPTO, symbol, "USD", "high"

    # Tickers are matched case-sensitively so words like "now" are not read as NOW
    for symbol in SUPPORTED_SYMBOLS:
        if _has_word(text, symbol):
            return BetType.STOCK, symbol, "USD", "high"

    if any(kw in lower for kw in WEATHER_KEYWORDS):
        for city in WEATHER_CITIES:
            if _has_word(lower, city):
                return BetType.WEATHER, normalize_city(city), "F", "high"
        return BetType.WEATHER, None, "F", "low"

    for team in SPORTS_TEAMS:
        if _has_word(lower, team):
            return BetType.SPORTS, team.upper(), "USD", "medium"
    if any(_has_word(lower, kw) for kw in SPORTS_KEYWORDS):
        return BetType.SPORTS, None, "USD", "medium"

    return None, None, "USD", "low"


def _parse_threshold(text: str) -> Optional[float]:
    for pattern in PRICE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        value = float(match.group(1).replace(",", ""))
        if re.search(r"\d\s*[kK]", match.group(0)):
            value *= 1000
        return value
    return None


def _build_date(year: Optional[str], month: int, day: int, now: datetime) -> Optional[datetime]:
    y = int(year) if year else now.year
    if y < 100:
        y += 2000
    try:
        return datetime(y, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_date(text: str, now: datetime) -> datetime:
    for match in MONTH_DAY.finditer(text):
        month = MONTHS.get(match.group(1).lower())
        if month:
            parsed = _build_date(match.group(3), month, int(match.group(2)), now)
            if parsed:
                return parsed

    match = NUMERIC_DATE.search(text)
    if match:
        parsed = _build_date(match.group(3), int(match.group(1)), int(match.group(2)), now)
        if parsed:
            return parsed

    # Default: one month out
    month = now.month % 12 + 1
    year = now.year + (1 if now.month == 12 else 0)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def parse_bet_text(text: str, now: Optional[datetime] = None) -> Optional[ParsedBet]:
    """
    Parse free-form market text. Returns None unless a type, an asset and a
    threshold could all be recovered.
    """
    if not text:
        return None
    now = now or utc_now()
    lower = text.lower()

    bet_type, asset, unit, confidence = _detect_asset(text, lower)
    threshold = _parse_threshold(text)
    if bet_type is None or not asset or threshold is None:
        return None

    position = BetPosition.NO if any(kw in lower for kw in NO_KEYWORDS) else BetPosition.YES

    return ParsedBet(
        type=bet_type,
        asset=asset,
        threshold=threshold,
        threshold_unit=unit,
        position=position,
        resolve_date=_parse_date(text, now),
        confidence=confidence,
    )
