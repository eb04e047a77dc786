"""Tests for the periodic live-update loop."""
import asyncio

import pytest

from core.exceptions import ProviderError
from models.bet import BetOutcome, BetPosition, BetType
from services.bet_store import BetStore
from services.broadcaster import LiveBroadcaster
from services.crypto_service import CryptoService
from services.stock_service import StockService
from services.weather_service import WeatherService
from fakes import RecordingPublisher, ScriptedCryptoProvider, ScriptedStockProvider, ScriptedWeatherProvider


@pytest.fixture
def crypto_provider():
    return ScriptedCryptoProvider("primary", {"BTC": 105000.0, "ETH": 3000.0})


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def store():
    return BetStore()


@pytest.fixture
def broadcaster(cache, store, crypto_provider, publisher):
    return LiveBroadcaster(
        store,
        CryptoService(cache, [crypto_provider], ttl=60),
        StockService(cache, [ScriptedStockProvider("primary", {"AAPL": 190.0})], market_ttl=60, after_hours_ttl=60),
        WeatherService(cache, [ScriptedWeatherProvider("primary", {"NEW_YORK": 72.0})], ttl=300),
        publisher,
        interval_seconds=3600,
    )


class TestTick:

    @pytest.mark.asyncio
    async def test_price_update_goes_global_and_to_channel(self, broadcaster, store, publisher, make_bet):
        store.create(make_bet())

        await broadcaster.tick()

        global_updates = publisher.events("price-update")
        channel_updates = publisher.events("price-update", "price:BTC")
        assert len(global_updates) == 1
        assert channel_updates == global_updates
        assert channel_updates[0]["type"] == "crypto"
        assert channel_updates[0]["price"] == 105000.0

    @pytest.mark.asyncio
    async def test_bet_update_and_snapshot(self, broadcaster, store, publisher, make_bet):
        bet = store.create(make_bet(position=BetPosition.NO))

        summary = await broadcaster.tick()

        [update] = publisher.events("bet-update", f"bet:{bet.id}")
        assert update["betId"] == bet.id
        assert update["currentValue"] == 105000.0
        assert update["isWinning"] is False
        assert update["status"] == "losing"
        assert update["distance"] == pytest.approx(-5.0)
        assert store.get(bet.id).current_value == 105000.0
        assert summary["betUpdates"] == 1

    @pytest.mark.asyncio
    async def test_one_bulk_fetch_per_domain(self, broadcaster, store, crypto_provider, make_bet):
        store.create(make_bet())
        store.create(make_bet())
        store.create(make_bet(asset="ETH", threshold=3500.0))

        summary = await broadcaster.tick()

        assert crypto_provider.calls == 1
        assert summary["readings"] == 2
        assert summary["betUpdates"] == 3

    @pytest.mark.asyncio
    async def test_failed_domain_does_not_stop_others(self, broadcaster, store, publisher, crypto_provider, make_bet):
        crypto_provider.error = ProviderError("down", provider="primary")
        store.create(make_bet())
        store.create(make_bet(type=BetType.WEATHER, asset="NEW_YORK", threshold=80.0, threshold_unit="F"))
        store.create(make_bet(type=BetType.STOCK, asset="AAPL", threshold=180.0))

        summary = await broadcaster.tick()

        assert summary["failedDomains"] == ["crypto"]
        assert publisher.events("weather-update", "price:NEW_YORK")[0]["temperature"] == 72.0
        assert publisher.events("price-update", "price:AAPL")[0]["type"] == "stock"
        assert summary["betUpdates"] == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_only_its_domain(self, broadcaster, store, publisher, crypto_provider, make_bet):
        crypto_provider.error = KeyError("lastPrice")
        store.create(make_bet())
        store.create(make_bet(type=BetType.STOCK, asset="AAPL", threshold=180.0))

        summary = await broadcaster.tick()

        assert summary["failedDomains"] == ["crypto"]
        assert publisher.events("price-update", "price:AAPL")[0]["price"] == 190.0

    @pytest.mark.asyncio
    async def test_resolved_and_untracked_bets_are_skipped(self, broadcaster, store, publisher, crypto_provider, make_bet):
        store.create(make_bet(resolved=True, outcome=BetOutcome.WON))
        store.create(make_bet(type=BetType.SPORTS, asset="LAKERS"))

        summary = await broadcaster.tick()

        assert summary["bets"] == 0
        assert publisher.sent == []
        assert crypto_provider.calls == 0


class TestLoop:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, broadcaster):
        broadcaster.start()
        assert broadcaster.running is True
        broadcaster.start()

        await broadcaster.stop()

        assert broadcaster.running is False

    @pytest.mark.asyncio
    async def test_loop_ticks_on_interval(self, broadcaster, store, publisher, make_bet):
        store.create(make_bet())
        broadcaster.interval_seconds = 0.01

        broadcaster.start()
        await asyncio.sleep(0.1)
        await broadcaster.stop()

        assert publisher.events("bet-update", f"bet:{store.all()[0].id}")

    @pytest.mark.asyncio
    async def test_loop_survives_unexpected_errors(self, broadcaster, store, crypto_provider, make_bet):
        crypto_provider.error = KeyError("lastPrice")
        store.create(make_bet())
        broadcaster.interval_seconds = 0.01

        broadcaster.start()
        await asyncio.sleep(0.1)

        assert broadcaster.running is True
        assert crypto_provider.calls > 1
        await broadcaster.stop()
        assert broadcaster.running is False

    @pytest.mark.asyncio
    async def test_loop_survives_a_failing_publisher(self, broadcaster, store, publisher, make_bet):
        calls = []

        async def explode(event, data):
            calls.append(event)
            raise RuntimeError("socket layer down")

        publisher.broadcast_all = explode
        store.create(make_bet())
        broadcaster.interval_seconds = 0.01

        broadcaster.start()
        await asyncio.sleep(0.1)

        assert broadcaster.running is True
        assert len(calls) > 1
        await broadcaster.stop()
