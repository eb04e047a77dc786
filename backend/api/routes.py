"""
API Routes for live market data (crypto, stocks, weather).
"""
from typing import List, Optional

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from core.exceptions import ValidationError
from models.readings import to_utc_iso, utc_now
from services.calculations import summarize_history

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class BulkPricesRequest(BaseModel):
    """Request model for bulk crypto prices."""
    symbols: List[str] = Field(min_length=1, max_length=20, description="Crypto symbols (BTC, ETH, ...)")


# ============================================================================
# Helpers
# ============================================================================

def ok(data, **extra) -> dict:
    """Success envelope shared by every endpoint."""
    body = {"success": True, "data": data}
    body.update(extra)
    body["timestamp"] = to_utc_iso(utc_now())
    return body


def clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def split_symbols(raw: Optional[str]) -> List[str]:
    symbols = [s.strip().upper() for s in (raw or "").split(",") if s.strip()]
    if not symbols:
        raise ValidationError("At least one symbol is required")
    return symbols


def history_body(history) -> dict:
    body = history.to_dict()
    body["summary"] = summarize_history(history.data)
    return body


# ============================================================================
# Crypto
# ============================================================================

crypto_router = APIRouter(prefix="/crypto", tags=["crypto"])


@crypto_router.get("/prices")
async def get_crypto_prices(req: Request, symbols: Optional[str] = Query(default=None)):
    """Prices for a comma-separated list of symbols."""
    prices = await req.app.state.crypto_service.get_prices(split_symbols(symbols))
    return ok([p.to_dict() for p in prices])


@crypto_router.get("/price/{symbol}")
async def get_crypto_price(symbol: str, req: Request):
    price = await req.app.state.crypto_service.get_price(symbol)
    return ok(price.to_dict())


@crypto_router.get("/history/{symbol}")
async def get_crypto_history(symbol: str, req: Request, days: int = Query(default=7)):
    """Price history with change, volatility and range over the window."""
    history = await req.app.state.crypto_service.get_history(symbol, clamp(days, 1, 365))
    return ok(history_body(history))


@crypto_router.post("/bulk-prices")
async def post_bulk_prices(request: BulkPricesRequest, req: Request):
    prices = await req.app.state.crypto_service.get_prices(request.symbols)
    return ok([p.to_dict() for p in prices])


@crypto_router.get("/supported")
async def get_supported_crypto(req: Request):
    return ok(req.app.state.crypto_service.get_supported_symbols())


# ============================================================================
# Stocks
# ============================================================================

stocks_router = APIRouter(prefix="/stocks", tags=["stocks"])


@stocks_router.get("/quote")
async def get_stock_quotes(req: Request, symbols: Optional[str] = Query(default=None)):
    quotes = await req.app.state.stock_service.get_quotes(split_symbols(symbols))
    return ok([q.to_dict() for q in quotes])


@stocks_router.get("/quote/{symbol}")
async def get_stock_quote(symbol: str, req: Request):
    quote = await req.app.state.stock_service.get_quote(symbol)
    return ok(quote.to_dict())


@stocks_router.get("/history/{symbol}")
async def get_stock_history(symbol: str, req: Request, days: int = Query(default=30)):
    history = await req.app.state.stock_service.get_history(symbol, clamp(days, 1, 365))
    return ok(history_body(history))


@stocks_router.get("/market-status")
async def get_market_status(req: Request):
    """Current US equity session."""
    return ok(req.app.state.stock_service.get_market_status())


@stocks_router.get("/supported")
async def get_supported_stocks(req: Request):
    return ok(req.app.state.stock_service.get_supported_symbols())


# ============================================================================
# Weather
# ============================================================================

weather_router = APIRouter(prefix="/weather", tags=["weather"])


@weather_router.get("/current")
async def get_current_weather(req: Request, city: Optional[str] = Query(default=None)):
    if not city or not city.strip():
        raise ValidationError("City is required")
    reading = await req.app.state.weather_service.get_current_weather(city)
    return ok(reading.to_dict())


@weather_router.get("/forecast")
async def get_weather_forecast(
    req: Request,
    city: Optional[str] = Query(default=None),
    hours: int = Query(default=24),
):
    """Hourly forecast for up to a week (1-168 hours)."""
    if not city or not city.strip():
        raise ValidationError("City is required")
    reading = await req.app.state.weather_service.get_forecast(city, clamp(hours, 1, 168))
    return ok(reading.to_dict())


@weather_router.get("/cities")
async def get_weather_cities(req: Request):
    return ok(req.app.state.weather_service.get_supported_cities())


router.include_router(crypto_router)
router.include_router(stocks_router)
router.include_router(weather_router)
