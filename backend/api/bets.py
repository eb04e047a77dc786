"""
API Routes for bets, portfolio analytics and wallet sync.
"""
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from loguru import logger

from core.exceptions import ValidationError
from models.bet import Bet, BetOutcome, BetPosition, BetType, CATEGORY_BY_TYPE, DATA_SOURCE_BY_TYPE
from services.bet_parser import parse_bet_text
from api.routes import clamp, ok

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class CamelModel(BaseModel):
    """Accepts camelCase JSON while exposing snake_case attributes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateBetRequest(CamelModel):
    market: str = Field(min_length=1, description="Market question as shown on Polymarket")
    position: BetPosition
    amount: float = Field(gt=0)
    shares: float = Field(gt=0)
    entry_odds: float = Field(ge=0, le=1)
    resolve_date: datetime

    # Parsed from the market text when omitted
    type: Optional[BetType] = None
    asset: Optional[str] = None
    threshold: Optional[float] = None
    threshold_unit: Optional[str] = None
    category: Optional[str] = None
    data_source: Optional[str] = None


class UpdateBetRequest(CamelModel):
    market: Optional[str] = Field(default=None, min_length=1)
    position: Optional[BetPosition] = None
    amount: Optional[float] = Field(default=None, gt=0)
    shares: Optional[float] = Field(default=None, gt=0)
    entry_odds: Optional[float] = Field(default=None, ge=0, le=1)
    resolve_date: Optional[datetime] = None
    resolved: Optional[bool] = None
    outcome: Optional[BetOutcome] = None


class WalletRequest(CamelModel):
    wallet_address: str = Field(pattern=r"^0x[a-fA-F0-9]{40}$", description="Ethereum wallet address")


# ============================================================================
# Bets
# ============================================================================

bets_router = APIRouter(prefix="/bets", tags=["bets"])


@bets_router.get("")
async def list_bets(req: Request, page: int = Query(default=1), limit: int = Query(default=20)):
    """Bets newest first, paginated."""
    store = req.app.state.bet_store
    page = max(page, 1)
    limit = clamp(limit, 1, 100)
    total = store.count()

    return ok(
        [b.to_dict() for b in store.list(page, limit)],
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    )


@bets_router.get("/{bet_id}")
async def get_bet(bet_id: str, req: Request):
    return ok(req.app.state.bet_store.get(bet_id).to_dict())


@bets_router.post("", status_code=201)
async def create_bet(request: CreateBetRequest, req: Request):
    """
    Create a bet. Type, asset and threshold are parsed from the market text
    when any of them is missing.
    """
    parsed = None
    if not request.type or not request.asset or request.threshold is None:
        parsed = parse_bet_text(request.market)
        if parsed is None:
            raise ValidationError(
                "Could not parse bet market text. Please provide type, asset, and threshold manually."
            )

    bet_type = request.type or (parsed.type if parsed else BetType.CRYPTO)
    bet = Bet(
        market=request.market,
        position=request.position,
        amount=request.amount,
        shares=request.shares,
        entry_odds=request.entry_odds,
        resolve_date=request.resolve_date,
        type=bet_type,
        asset=(request.asset or (parsed.asset if parsed else "")).upper(),
        threshold=request.threshold if request.threshold is not None else parsed.threshold,
        threshold_unit=request.threshold_unit or (parsed.threshold_unit if parsed else "USD"),
        category=request.category or CATEGORY_BY_TYPE.get(bet_type, "Other"),
        data_source=request.data_source or DATA_SOURCE_BY_TYPE.get(bet_type, "unknown"),
    )
    req.app.state.bet_store.create(bet)

    return ok(bet.to_dict(), parsed=parsed.to_dict() if parsed else None)


@bets_router.put("/{bet_id}")
async def update_bet(bet_id: str, request: UpdateBetRequest, req: Request):
    changes = request.model_dump(exclude_unset=True)
    bet = req.app.state.bet_store.update(bet_id, changes)
    return ok(bet.to_dict())


@bets_router.delete("/{bet_id}")
async def delete_bet(bet_id: str, req: Request):
    req.app.state.bet_store.delete(bet_id)
    return ok(None, message="Bet deleted successfully")


@bets_router.get("/{bet_id}/status")
async def get_bet_status(bet_id: str, req: Request):
    """Live distance, status and P&L for one bet."""
    return ok(await req.app.state.bet_status.get_status(bet_id))


# ============================================================================
# Analytics
# ============================================================================

analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])


@analytics_router.get("/portfolio")
async def get_portfolio(req: Request):
    return ok(await req.app.state.bet_status.portfolio())


@analytics_router.get("/performance")
async def get_performance(req: Request):
    return ok(req.app.state.bet_status.performance())


@analytics_router.get("/by-type")
async def get_by_type(req: Request):
    return ok(req.app.state.bet_status.by_type())


@analytics_router.get("/api-usage")
async def get_api_usage(req: Request):
    """Advisory per-provider call counts for the current UTC day."""
    return ok(req.app.state.usage_tracker.stats())


# ============================================================================
# Wallet
# ============================================================================

wallet_router = APIRouter(prefix="/wallet", tags=["wallet"])


@wallet_router.post("/sync")
async def sync_wallet(request: WalletRequest, req: Request):
    logger.info(f"Syncing wallet {request.wallet_address}")
    result = await req.app.state.wallet_sync.sync(request.wallet_address)
    return ok(result, message=f"Successfully synced {result['syncedPositions']} positions")


@wallet_router.get("/positions/{wallet_address}")
async def get_wallet_positions(wallet_address: str, req: Request):
    positions = await req.app.state.wallet_sync.get_positions(wallet_address)
    return ok({"positions": positions, "count": len(positions)})


@wallet_router.get("/value/{wallet_address}")
async def get_wallet_value(wallet_address: str, req: Request):
    value = await req.app.state.wallet_sync.get_portfolio_value(wallet_address)
    return ok({"walletAddress": wallet_address, "value": value})


router.include_router(bets_router)
router.include_router(analytics_router)
router.include_router(wallet_router)
