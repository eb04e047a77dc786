"""Tests for provider adapters against scripted HTTP replies."""
import aiohttp
import pytest

from core.exceptions import ProviderError, ProviderRateLimited, UnsupportedAsset
from models.readings import MarketStatus
from services.providers import (
    BinanceProvider,
    CoinGeckoProvider,
    FinnhubProvider,
    OpenMeteoProvider,
    OpenWeatherProvider,
    YahooProvider,
)
from services.usage_tracker import UsageTracker
from fakes import FakeResponse, FakeSession


def with_session(provider, *replies):
    provider.session = FakeSession(*replies)
    return provider


class TestBaseProvider:

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        provider = with_session(CoinGeckoProvider(), FakeResponse(status=429))
        with pytest.raises(ProviderRateLimited):
            await provider.fetch_one("BTC")

    @pytest.mark.asyncio
    async def test_server_error(self):
        provider = with_session(CoinGeckoProvider(), FakeResponse(status=500))
        with pytest.raises(ProviderError, match="CoinGecko API error: 500"):
            await provider.fetch_one("BTC")

    @pytest.mark.asyncio
    async def test_invalid_key(self):
        provider = with_session(FinnhubProvider(api_key="bad"), FakeResponse(status=401))
        with pytest.raises(ProviderError, match="Invalid Finnhub API key"):
            await provider.fetch_one("AAPL")

    @pytest.mark.asyncio
    async def test_network_error(self):
        provider = with_session(CoinGeckoProvider(), aiohttp.ClientConnectionError("refused"))
        with pytest.raises(ProviderError) as exc:
            await provider.fetch_one("BTC")
        assert exc.value.provider == "coingecko"

    @pytest.mark.asyncio
    async def test_bad_json(self):
        provider = with_session(CoinGeckoProvider(), FakeResponse(json_error=ValueError("bad json")))
        with pytest.raises(ProviderError):
            await provider.fetch_one("BTC")

    @pytest.mark.asyncio
    async def test_missing_key_blocks_call(self):
        provider = with_session(FinnhubProvider())
        assert provider.is_available() is False
        with pytest.raises(ProviderError, match="API key not configured"):
            await provider.fetch_one("AAPL")
        assert provider.session.calls == []

    @pytest.mark.asyncio
    async def test_usage_is_recorded(self):
        usage = UsageTracker({"coingecko": 10})
        provider = with_session(
            CoinGeckoProvider(usage=usage),
            {"bitcoin": {"usd": 1.0, "usd_24h_change": 0}},
        )
        await provider.fetch_one("BTC")
        assert usage.calls_today("coingecko") == 1

    @pytest.mark.asyncio
    async def test_close(self):
        provider = with_session(CoinGeckoProvider())
        session = provider.session
        await provider.close()
        assert session.closed is True


class TestCoinGecko:

    @pytest.mark.asyncio
    async def test_fetch_one(self):
        provider = with_session(
            CoinGeckoProvider(api_key="demo"),
            {"bitcoin": {"usd": 100000, "usd_24h_change": 2.5}},
        )
        price = await provider.fetch_one("btc")

        assert price.symbol == "BTC"
        assert price.price == 100000.0
        assert price.change_24h == 2.5
        assert price.source == "coingecko"
        call = provider.session.calls[0]
        assert call["url"].endswith("/simple/price")
        assert call["params"]["ids"] == "bitcoin"
        assert call["headers"]["x-cg-demo-api-key"] == "demo"

    @pytest.mark.asyncio
    async def test_fetch_many_maps_ids_back(self):
        provider = with_session(CoinGeckoProvider(), {
            "bitcoin": {"usd": 100000, "usd_24h_change": 1},
            "ethereum": {"usd": 3500, "usd_24h_change": -1},
        })
        prices = await provider.fetch_many(["BTC", "ETH", "NOPE"])

        assert {p.symbol: p.price for p in prices} == {"BTC": 100000.0, "ETH": 3500.0}
        assert provider.session.calls[0]["params"]["ids"] == "bitcoin,ethereum"

    @pytest.mark.asyncio
    async def test_missing_price_field(self):
        provider = with_session(CoinGeckoProvider(), {"bitcoin": {"usd_24h_change": 1}})
        with pytest.raises(ProviderError, match="missing usd"):
            await provider.fetch_one("BTC")

    @pytest.mark.asyncio
    async def test_unsupported_symbol_makes_no_call(self):
        provider = with_session(CoinGeckoProvider())
        with pytest.raises(UnsupportedAsset):
            await provider.fetch_one("NOPE")
        assert provider.session.calls == []

    @pytest.mark.asyncio
    async def test_history(self):
        provider = with_session(CoinGeckoProvider(), {
            "prices": [[1700000000000, 100.0], [1700003600000, 101.0]],
            "total_volumes": [[1700000000000, 5.0], [1700003600000, 6.0]],
        })
        history = await provider.fetch_history("ETH", days=1)

        assert [p.price for p in history.data] == [100.0, 101.0]
        assert history.data[0].volume == 5.0
        assert history.data[0].timestamp.tzinfo is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"prices": [[1700000000000, None]]},
        {"prices": [[1700000000000]]},
        {"prices": [[1700000000000, 100.0]], "total_volumes": [[1700000000000, "lots"]]},
        {"prices": "none"},
    ])
    async def test_malformed_history(self, payload):
        provider = with_session(CoinGeckoProvider(), payload)
        with pytest.raises(ProviderError):
            await provider.fetch_history("BTC", days=1)


class TestBinance:

    @pytest.mark.asyncio
    async def test_fetch_one(self):
        provider = with_session(BinanceProvider(), {"symbol": "ETHUSDT", "lastPrice": "3500.10", "priceChangePercent": "-1.2"})
        price = await provider.fetch_one("ETH")

        assert price.price == 3500.10
        assert price.change_24h == -1.2
        assert provider.session.calls[0]["params"] == {"symbol": "ETHUSDT"}

    @pytest.mark.asyncio
    async def test_fetch_many(self):
        provider = with_session(BinanceProvider(), [
            {"symbol": "BTCUSDT", "lastPrice": "100000", "priceChangePercent": "1"},
            {"symbol": "ETHUSDT", "lastPrice": "3500", "priceChangePercent": "2"},
        ])
        prices = await provider.fetch_many(["BTC", "ETH"])

        assert [p.symbol for p in prices] == ["BTC", "ETH"]
        assert provider.session.calls[0]["params"]["symbols"] == '["BTCUSDT","ETHUSDT"]'

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days,interval,limit", [(1, "1h", "24"), (7, "4h", "42"), (30, "1d", "30")])
    async def test_kline_interval(self, days, interval, limit):
        kline = [1700000000000, "1", "2", "0.5", "1.5", "10"]
        provider = with_session(BinanceProvider(), [kline])
        history = await provider.fetch_history("BTC", days=days)

        params = provider.session.calls[0]["params"]
        assert params["interval"] == interval
        assert params["limit"] == limit
        assert history.data[0].price == 1.5
        assert history.data[0].volume == 10.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kline", [
        [1700000000000, "1", "2", "0.5", "1.5"],
        [1700000000000, "1", "2", "0.5", None, "10"],
        "1700000000000",
    ])
    async def test_malformed_kline(self, kline):
        provider = with_session(BinanceProvider(), [kline])
        with pytest.raises(ProviderError):
            await provider.fetch_history("BTC", days=1)


class TestYahoo:

    @pytest.mark.asyncio
    async def test_quotes_and_market_state(self):
        provider = with_session(YahooProvider(), {
            "quoteResponse": {
                "result": [
                    {"symbol": "AAPL", "regularMarketPrice": 190.5, "regularMarketChange": 1.5,
                     "regularMarketChangePercent": 0.8, "marketState": "PRE"},
                    {"symbol": "TSLA", "regularMarketPrice": 250.0, "marketState": "POSTPOST"},
                ],
                "error": None,
            }
        })
        quotes = await provider.fetch_many(["AAPL", "TSLA"])

        assert quotes[0].market_status == MarketStatus.PRE_MARKET
        assert quotes[0].change_percent == 0.8
        assert quotes[1].market_status == MarketStatus.AFTER_HOURS
        assert quotes[1].change == 0.0
        assert provider.session.calls[0]["headers"]["User-Agent"].startswith("Mozilla/5.0")

    @pytest.mark.asyncio
    async def test_empty_result(self):
        provider = with_session(YahooProvider(), {"quoteResponse": {"result": [], "error": None}})
        with pytest.raises(ProviderError, match="No data returned"):
            await provider.fetch_one("AAPL")

    @pytest.mark.asyncio
    async def test_history_skips_missing_closes(self):
        provider = with_session(YahooProvider(), {
            "chart": {"result": [{
                "timestamp": [1700000000, 1700003600, 1700007200],
                "indicators": {"quote": [{"close": [190.0, None, 192.0], "volume": [10, 11, 12]}]},
            }]}
        })
        history = await provider.fetch_history("AAPL", days=5)

        assert [p.price for p in history.data] == [190.0, 192.0]
        assert provider.session.calls[0]["params"] == {"interval": "1h", "range": "5d"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chart", [
        {"result": [{"timestamp": [1700000000], "indicators": {"quote": [{"close": ["n/a"]}]}}]},
        {"result": [{"timestamp": [1700000000], "indicators": {"quote": []}}]},
        {"result": [{"timestamp": 1700000000, "indicators": {"quote": [{"close": [190.0]}]}}]},
        {"result": None, "error": {"code": "Not Found"}},
    ])
    async def test_malformed_history(self, chart):
        provider = with_session(YahooProvider(), {"chart": chart})
        with pytest.raises(ProviderError):
            await provider.fetch_history("AAPL", days=5)


class TestFinnhub:

    @pytest.mark.asyncio
    async def test_fetch_one(self):
        provider = with_session(FinnhubProvider(api_key="k"), {"c": 190.0, "d": 1.0, "dp": 0.5})
        quote = await provider.fetch_one("AAPL")

        assert quote.price == 190.0
        assert quote.source == "finnhub"
        assert provider.session.calls[0]["params"]["token"] == "k"

    @pytest.mark.asyncio
    async def test_bulk_tolerates_single_failure(self):
        provider = with_session(
            FinnhubProvider(api_key="k"),
            {"c": 190.0, "d": 1.0, "dp": 0.5},
            {"c": 0},
        )
        quotes = await provider.fetch_many(["AAPL", "TSLA"])
        assert [q.symbol for q in quotes] == ["AAPL"]

    @pytest.mark.asyncio
    async def test_bulk_fails_when_every_symbol_fails(self):
        provider = with_session(FinnhubProvider(api_key="k"), {"c": 0}, FakeResponse(status=500))
        with pytest.raises(ProviderError):
            await provider.fetch_many(["AAPL", "TSLA"])

    @pytest.mark.asyncio
    async def test_candles(self):
        provider = with_session(
            FinnhubProvider(api_key="k"),
            {"s": "ok", "c": [1.0, 2.0], "t": [1700000000, 1700086400], "v": [5, 6]},
        )
        history = await provider.fetch_history("AAPL", days=30)
        assert [p.price for p in history.data] == [1.0, 2.0]
        assert provider.session.calls[0]["params"]["resolution"] == "D"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("candles", [
        {"s": "ok", "c": [1.0], "t": [1700000000, 1700086400]},
        {"s": "ok", "c": [None], "t": [1700000000]},
        {"s": "ok", "c": [1.0], "t": ["yesterday"]},
    ])
    async def test_malformed_candles(self, candles):
        provider = with_session(FinnhubProvider(api_key="k"), candles)
        with pytest.raises(ProviderError):
            await provider.fetch_history("AAPL", days=30)


class TestOpenMeteo:

    PAYLOAD = {
        "current": {
            "temperature_2m": 20.0,
            "relative_humidity_2m": 55,
            "wind_speed_10m": 10.0,
            "weather_code": 3,
        },
        "hourly": {
            "time": [f"2026-10-20T{h:02d}:00" for h in range(24)] + [f"2026-10-21T{h:02d}:00" for h in range(24)],
            "temperature_2m": [10.0] * 48,
        },
    }

    @pytest.mark.asyncio
    async def test_current_weather_converts_units(self):
        provider = with_session(OpenMeteoProvider(), self.PAYLOAD)
        reading = await provider.fetch_one("new york")

        assert reading.city == "NEW_YORK"
        assert reading.temperature == 68
        assert reading.wind_speed == 6
        assert reading.condition == "Overcast"
        assert len(reading.forecast_24h) == 24
        assert reading.forecast_24h[0]["temp"] == 50
        assert provider.session.calls[0]["params"]["forecast_days"] == "2"

    @pytest.mark.asyncio
    async def test_forecast_days_are_capped(self):
        provider = with_session(OpenMeteoProvider(), self.PAYLOAD)
        reading = await provider.fetch_forecast("Chicago", hours=30)

        assert len(reading.forecast_24h) == 30
        assert provider.session.calls[0]["params"]["forecast_days"] == "2"

    def test_supported_cities_exclude_aliases(self):
        cities = OpenMeteoProvider().supported_cities()
        assert "NEW_YORK" in cities
        assert "NYC" not in cities
        assert OpenMeteoProvider().is_supported("nyc") is True

    @pytest.mark.asyncio
    async def test_unknown_city(self):
        provider = with_session(OpenMeteoProvider())
        with pytest.raises(UnsupportedAsset):
            await provider.fetch_one("Atlantis")

    @pytest.mark.asyncio
    async def test_non_numeric_hourly_temperature(self):
        payload = dict(self.PAYLOAD, hourly={"time": ["2026-10-20T00:00"], "temperature_2m": ["warm"]})
        provider = with_session(OpenMeteoProvider(), payload)
        with pytest.raises(ProviderError, match="non-numeric hourly.temperature_2m"):
            await provider.fetch_one("Chicago")


class TestOpenWeather:

    @pytest.mark.asyncio
    async def test_current_weather(self):
        provider = with_session(OpenWeatherProvider(api_key="k"), {
            "main": {"temp": 71.6, "humidity": 40},
            "wind": {"speed": 7.4},
            "weather": [{"main": "Clouds"}],
        })
        reading = await provider.fetch_one("Boston")

        assert reading.temperature == 72
        assert reading.wind_speed == 7
        assert reading.condition == "Clouds"
        assert provider.session.calls[0]["params"]["units"] == "imperial"

    @pytest.mark.asyncio
    async def test_forecast(self):
        provider = with_session(OpenWeatherProvider(api_key="k"), {
            "list": [
                {"dt": 1700000000 + i * 10800, "main": {"temp": 60 + i, "humidity": 50},
                 "wind": {"speed": 3}, "weather": [{"main": "Clear"}]}
                for i in range(8)
            ]
        })
        reading = await provider.fetch_forecast("Boston", hours=24)

        assert reading.temperature == 60
        assert len(reading.forecast_24h) == 8
        assert reading.forecast_24h[0]["time"].endswith("Z")
        assert provider.session.calls[0]["params"]["cnt"] == "8"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("items", [
        [{"dt": 1700000000, "main": {"temp": 60}}, {"dt": 1700010800}],
        [{"dt": "soon", "main": {"temp": 60}}],
        [{"dt": 1700000000, "main": "hot"}],
    ])
    async def test_malformed_forecast(self, items):
        provider = with_session(OpenWeatherProvider(api_key="k"), {"list": items})
        with pytest.raises(ProviderError):
            await provider.fetch_forecast("Boston", hours=6)

    def test_smaller_city_table(self):
        provider = OpenWeatherProvider(api_key="k")
        assert provider.is_supported("Boston") is True
        assert provider.is_supported("Tampa") is False


class TestUsageTracker:

    def test_counts_and_stats(self):
        usage = UsageTracker({"yahoo": 2})
        usage.record("yahoo")
        usage.record("yahoo")
        usage.record("yahoo")

        stats = {s["service"]: s for s in usage.stats()}
        assert stats["yahoo"]["callsToday"] == 3
        assert stats["yahoo"]["percentUsed"] == 150.0

    def test_reset(self):
        usage = UsageTracker({"yahoo": 2})
        usage.record("yahoo")
        usage.reset()
        assert usage.calls_today("yahoo") == 0
