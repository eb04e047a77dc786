"""Tests for bet evaluation and portfolio analytics."""
import pytest

from core.exceptions import NoDataAvailable, ProviderError, ValidationError
from models.bet import BetOutcome, BetPosition, BetType
from services.bet_status import BetStatusService
from services.bet_store import BetStore
from services.crypto_service import CryptoService
from services.stock_service import StockService
from services.weather_service import WeatherService
from fakes import ScriptedCryptoProvider, ScriptedStockProvider, ScriptedWeatherProvider


@pytest.fixture
def crypto_provider():
    return ScriptedCryptoProvider("primary", {"BTC": 105000.0, "ETH": 3000.0})


@pytest.fixture
def store():
    return BetStore()


@pytest.fixture
def status(cache, store, crypto_provider):
    return BetStatusService(
        store,
        CryptoService(cache, [crypto_provider], ttl=60),
        StockService(cache, [ScriptedStockProvider("primary", {"AAPL": 190.0})], market_ttl=60, after_hours_ttl=60),
        WeatherService(cache, [ScriptedWeatherProvider("primary", {"NEW_YORK": 72.0})], ttl=300),
    )


class TestEvaluate:

    def test_winning_yes_bet(self, status, make_bet):
        body = status.evaluate(make_bet(), 105000.0)

        assert body["status"] == "winning"
        assert body["isWinning"] is True
        assert body["distance"]["value"] == 5000.0
        assert body["distance"]["percent"] == pytest.approx(5.0)
        assert body["pnl"]["invested"] == 50.0
        assert body["pnl"]["currentValue"] == pytest.approx(50.0)
        assert body["pnl"]["potentialPayout"] == 100.0

    def test_pnl_uses_latest_odds(self, status, make_bet):
        body = status.evaluate(make_bet(current_odds=0.65), 99000.0)

        assert body["status"] == "losing"
        assert body["pnl"]["unrealizedPnL"] == pytest.approx(15.0)
        assert body["pnl"]["roi"] == pytest.approx(30.0)


class TestGetStatus:

    @pytest.mark.asyncio
    async def test_crypto_status_is_recorded(self, status, store, make_bet):
        bet = store.create(make_bet())

        body = await status.get_status(bet.id)

        assert body["betId"] == bet.id
        assert body["currentValue"] == 105000.0
        assert store.get(bet.id).current_value == 105000.0
        assert store.get(bet.id).pnl == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_stock_and_weather_values(self, status, make_bet):
        stock = make_bet(type=BetType.STOCK, asset="AAPL", threshold=200.0, position=BetPosition.NO)
        weather = make_bet(type=BetType.WEATHER, asset="NEW_YORK", threshold=80.0, threshold_unit="F")

        assert await status.get_current_value(stock) == 190.0
        assert await status.get_current_value(weather) == 72.0

    @pytest.mark.asyncio
    async def test_sports_bets_cannot_be_valued(self, status, make_bet):
        with pytest.raises(ValidationError):
            await status.get_current_value(make_bet(type=BetType.SPORTS, asset="LAKERS"))

    @pytest.mark.asyncio
    async def test_feed_failure_is_reported_as_no_data(self, status, store, make_bet, crypto_provider):
        crypto_provider.error = ProviderError("down", provider="primary")
        bet = store.create(make_bet())

        with pytest.raises(NoDataAvailable, match="Unable to fetch current value for BTC"):
            await status.get_status(bet.id)


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_portfolio(self, status, store, make_bet):
        store.create(make_bet(threshold=100000.0))
        store.create(make_bet(asset="ETH", threshold=3500.0, current_odds=0.25))
        store.create(make_bet(type=BetType.SPORTS, asset="LAKERS", amount=20.0))
        store.create(make_bet(resolved=True, outcome=BetOutcome.WON, amount=999.0))

        body = await status.portfolio()

        assert body["totalBets"] == 3
        assert body["totalInvested"] == pytest.approx(120.0)
        assert body["winningBets"] == 1
        assert body["losingBets"] == 1
        assert body["currentValue"] == pytest.approx(50.0 + 25.0)
        assert body["unrealizedPnL"] == pytest.approx(75.0 - 120.0)
        assert body["winRate"] == pytest.approx(100 / 3)

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, status):
        body = await status.portfolio()
        assert body["totalBets"] == 0
        assert body["winRate"] == 0

    def test_performance(self, status, store, make_bet):
        store.create(make_bet(resolved=True, outcome=BetOutcome.WON, shares=100.0))
        store.create(make_bet(resolved=True, outcome=BetOutcome.LOST, amount=30.0))
        store.create(make_bet())

        body = status.performance()

        assert body["totalResolved"] == 2
        assert body["won"] == 1
        assert body["lost"] == 1
        assert body["winRate"] == 50
        assert body["totalWon"] == 100.0
        assert body["totalLost"] == 30.0
        assert body["netProfit"] == 70.0
        assert len(body["recentBets"]) == 2

    def test_by_type(self, status, store, make_bet):
        store.create(make_bet(amount=10.0))
        store.create(make_bet(amount=15.0))
        store.create(make_bet(type=BetType.STOCK, asset="AAPL", amount=5.0))

        groups = {g["type"]: g for g in status.by_type()}

        assert groups["crypto"] == {"type": "crypto", "count": 2, "totalInvested": 25.0}
        assert groups["stock"]["count"] == 1
