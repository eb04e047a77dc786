import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from core.cache import CacheService  # noqa: E402
from models.bet import Bet, BetPosition, BetType  # noqa: E402
from fakes import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheService(stale_retention_seconds=3600, clock=clock)


@pytest.fixture
def make_bet():
    """Factory for bets with sensible defaults."""

    def _make(**overrides):
        fields = dict(
            market="Will Bitcoin be above $100k?",
            position=BetPosition.YES,
            amount=50.0,
            shares=100.0,
            entry_odds=0.5,
            resolve_date=datetime.now(timezone.utc) + timedelta(days=30),
            type=BetType.CRYPTO,
            asset="BTC",
            threshold=100000.0,
        )
        fields.update(overrides)
        return Bet(**fields)

    return _make
