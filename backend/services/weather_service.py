"""
Weather Service - Open-Meteo first, OpenWeather as fallback.
"""
import asyncio
from typing import List, Optional

from loguru import logger

from core.cache import CacheService
from core.config import settings
from core.exceptions import UnsupportedAsset
from models.readings import WeatherReading
from services.aggregator import BaseAggregator
from services.providers import OpenMeteoProvider, OpenWeatherProvider, WeatherProvider, normalize_city
from services.usage_tracker import UsageTracker


def default_weather_providers(usage: Optional[UsageTracker] = None) -> List[WeatherProvider]:
    return [
        OpenMeteoProvider(timeout_seconds=settings.provider_timeout_seconds, usage=usage),
        OpenWeatherProvider(
            api_key=settings.openweather_api_key,
            timeout_seconds=settings.provider_timeout_seconds,
            usage=usage,
        ),
    ]


class WeatherService(BaseAggregator):
    """Current conditions and hourly forecasts per city."""

    domain = "weather"

    def __init__(
        self,
        cache: CacheService,
        providers: Optional[List[WeatherProvider]] = None,
        ttl: Optional[int] = None,
    ):
        super().__init__(cache, providers if providers is not None else default_weather_providers())
        self.ttl = ttl if ttl is not None else settings.weather_cache_ttl

    @property
    def forecast_ttl(self) -> int:
        return self.ttl * 6

    def is_supported(self, city: str) -> bool:
        return any(p.is_supported(city) for p in self.providers)

    def get_supported_cities(self) -> List[str]:
        cities: List[str] = []
        for provider in self.providers:
            cities.extend(c for c in provider.supported_cities() if c not in cities)
        return cities

    def _check(self, city: str) -> str:
        key = normalize_city(city)
        if not self.is_supported(key):
            raise UnsupportedAsset(f"Unsupported city: {city}", asset=city)
        return key

    async def get_current_weather(self, city: str) -> WeatherReading:
        city = self._check(city)
        return await self._read_one(
            f"weather:current:{city}",
            self.ttl,
            lambda: self._first_success(f"{city} weather", lambda p: p.fetch_one(city)),
            WeatherReading.from_dict,
        )

    async def get_current_weather_many(self, cities: List[str]) -> List[WeatherReading]:
        """Concurrent per-city reads; cities that fail are left out."""
        unique = list(dict.fromkeys(normalize_city(c) for c in cities if c and c.strip()))
        results = await asyncio.gather(
            *[self.get_current_weather(city) for city in unique],
            return_exceptions=True,
        )

        readings = []
        for city, result in zip(unique, results):
            if isinstance(result, BaseException):
                logger.warning(f"Weather unavailable for {city}: {result}")
                continue
            readings.append(result)
        return readings

    async def get_forecast(self, city: str, hours: int = 24) -> WeatherReading:
        city = self._check(city)
        return await self._read_one(
            f"weather:forecast:{city}:{hours}",
            self.forecast_ttl,
            lambda: self._first_success(f"{city} {hours}h forecast", lambda p: p.fetch_forecast(city, hours)),
            WeatherReading.from_dict,
        )
