"""
Weather providers.
Supports:
- Open-Meteo (primary, keyless, metric units converted to imperial)
- OpenWeather (fallback, requires an API key)
"""
import math
import re
from typing import Dict, List, Tuple

from core.exceptions import ProviderError, UnsupportedAsset
from models.readings import WeatherReading, to_utc_iso, utc_now
from .base import BaseProvider

Coordinates = Tuple[float, float]

CITY_ALIASES = {"NYC", "LA", "SF", "DC", "VEGAS"}

OPEN_METEO_CITIES: Dict[str, Coordinates] = {
    "NEW_YORK": (40.7128, -74.006),
    "NYC": (40.7128, -74.006),
    "LOS_ANGELES": (34.0522, -118.2437),
    "LA": (34.0522, -118.2437),
    "CHICAGO": (41.8781, -87.6298),
    "MIAMI": (25.7617, -80.1918),
    "HOUSTON": (29.7604, -95.3698),
    "PHOENIX": (33.4484, -112.074),
    "PHILADELPHIA": (39.9526, -75.1652),
    "SAN_ANTONIO": (29.4241, -98.4936),
    "SAN_DIEGO": (32.7157, -117.1611),
    "DALLAS": (32.7767, -96.797),
    "SAN_JOSE": (37.3382, -121.8863),
    "AUSTIN": (30.2672, -97.7431),
    "JACKSONVILLE": (30.3322, -81.6557),
    "FORT_WORTH": (32.7555, -97.3308),
    "COLUMBUS": (39.9612, -82.9988),
    "CHARLOTTE": (35.2271, -80.8431),
    "SAN_FRANCISCO": (37.7749, -122.4194),
    "SF": (37.7749, -122.4194),
    "INDIANAPOLIS": (39.7684, -86.1581),
    "SEATTLE": (47.6062, -122.3321),
    "DENVER": (39.7392, -104.9903),
    "WASHINGTON": (38.9072, -77.0369),
    "DC": (38.9072, -77.0369),
    "BOSTON": (42.3601, -71.0589),
    "NASHVILLE": (36.1627, -86.7816),
    "DETROIT": (42.3314, -83.0458),
    "PORTLAND": (45.5152, -122.6784),
    "LAS_VEGAS": (36.1699, -115.1398),
    "VEGAS": (36.1699, -115.1398),
    "ATLANTA": (33.749, -84.388),
    "MEMPHIS": (35.1495, -90.049),
    "BALTIMORE": (39.2904, -76.6122),
    "MILWAUKEE": (43.0389, -87.9065),
    "ALBUQUERQUE": (35.0844, -106.6504),
    "TUCSON": (32.2226, -110.9747),
    "FRESNO": (36.7378, -119.7871),
    "SACRAMENTO": (38.5816, -121.4944),
    "KANSAS_CITY": (39.0997, -94.5786),
    "MESA": (33.4152, -111.8315),
    "OMAHA": (41.2565, -95.9345),
    "CLEVELAND": (41.4993, -81.6944),
    "MINNEAPOLIS": (44.9778, -93.265),
    "NEW_ORLEANS": (29.9511, -90.0715),
    "TAMPA": (27.9506, -82.4572),
    "ORLANDO": (28.5383, -81.3792),
    "SALT_LAKE_CITY": (40.7608, -111.891),
    "PITTSBURGH": (40.4406, -79.9959),
    "CINCINNATI": (39.1031, -84.512),
    "ST_LOUIS": (38.627, -90.1994),
}

OPEN_WEATHER_CITIES: Dict[str, Coordinates] = {
    key: OPEN_METEO_CITIES[key]
    for key in (
        "NEW_YORK", "NYC", "LOS_ANGELES", "LA", "CHICAGO", "MIAMI", "HOUSTON",
        "PHOENIX", "PHILADELPHIA", "SAN_FRANCISCO", "SF", "SEATTLE", "DENVER",
        "BOSTON", "ATLANTA", "DALLAS", "LAS_VEGAS", "VEGAS",
    )
}

# WMO weather interpretation codes
WMO_CODES = {
    0: "Clear",
    1: "Mainly Clear",
    2: "Partly Cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing Rime Fog",
    51: "Light Drizzle",
    53: "Moderate Drizzle",
    55: "Dense Drizzle",
    61: "Slight Rain",
    63: "Moderate Rain",
    65: "Heavy Rain",
    66: "Light Freezing Rain",
    67: "Heavy Freezing Rain",
    71: "Slight Snow",
    73: "Moderate Snow",
    75: "Heavy Snow",
    77: "Snow Grains",
    80: "Slight Rain Showers",
    81: "Moderate Rain Showers",
    82: "Violent Rain Showers",
    85: "Slight Snow Showers",
    86: "Heavy Snow Showers",
    95: "Thunderstorm",
    96: "Thunderstorm with Slight Hail",
    99: "Thunderstorm with Heavy Hail",
}


def normalize_city(city: str) -> str:
    """'new york' -> 'NEW_YORK'"""
    return re.sub(r"\s+", "_", city.strip().upper())


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9 / 5 + 32


def kmh_to_mph(kmh: float) -> float:
    return kmh * 0.621371


class WeatherProvider(BaseProvider):
    """Capability set shared by weather providers."""

    CITIES: Dict[str, Coordinates] = {}

    def is_supported(self, city: str) -> bool:
        return normalize_city(city) in self.CITIES

    def supported_cities(self) -> List[str]:
        return [c for c in self.CITIES if c not in CITY_ALIASES]

    def _coordinates(self, city: str) -> Coordinates:
        coords = self.CITIES.get(normalize_city(city))
        if coords is None:
            raise UnsupportedAsset(f"Unsupported city: {city}", asset=city)
        return coords

    async def fetch_one(self, city: str) -> WeatherReading:
        raise NotImplementedError

    async def fetch_forecast(self, city: str, hours: int = 24) -> WeatherReading:
        raise NotImplementedError


class OpenMeteoProvider(WeatherProvider):
    """Open-Meteo forecast API."""

    name = "open-meteo"
    label = "Open-Meteo"
    base_url = "https://api.open-meteo.com/v1"

    CITIES = OPEN_METEO_CITIES

    async def _forecast(self, city: str, forecast_days: int, hours: int) -> WeatherReading:
        lat, lon = self._coordinates(city)
        data = await self._get_json(
            f"{self.base_url}/forecast",
            params={
                "latitude": str(lat),
                "longitude": str(lon),
                "current": "temperature_2m,relative_humidity_2m,wind_speed_10m,weather_code",
                "hourly": "temperature_2m",
                "temperature_unit": "celsius",
                "wind_speed_unit": "kmh",
                "forecast_days": str(forecast_days),
                "timezone": "auto",
            },
        )
        self.require(data, "current", context=city)
        current = data["current"]
        self.require(current, "temperature_2m", context=city)

        hourly = data.get("hourly") if isinstance(data.get("hourly"), dict) else {}
        temps = self.require_row(hourly.get("temperature_2m") or [], 0, "hourly.temperature_2m")
        forecast = [
            {
                "time": t,
                "temp": round(celsius_to_fahrenheit(
                    self.to_float(temps[i], "hourly.temperature_2m")
                    if i < len(temps) and temps[i] is not None else 0
                )),
            }
            for i, t in enumerate((hourly.get("time") or [])[:hours])
        ]

        return WeatherReading(
            city=normalize_city(city),
            temperature=round(celsius_to_fahrenheit(self.to_float(current["temperature_2m"], "temperature_2m"))),
            humidity=self.to_float(current.get("relative_humidity_2m") or 0, "relative_humidity_2m"),
            wind_speed=round(kmh_to_mph(self.to_float(current.get("wind_speed_10m") or 0, "wind_speed_10m"))),
            condition=WMO_CODES.get(current.get("weather_code"), "Unknown"),
            last_update=utc_now(),
            source=self.name,
            forecast_24h=forecast,
        )

    async def fetch_one(self, city: str) -> WeatherReading:
        return await self._forecast(city, forecast_days=2, hours=24)

    async def fetch_forecast(self, city: str, hours: int = 24) -> WeatherReading:
        return await self._forecast(city, forecast_days=min(math.ceil(hours / 24), 16), hours=hours)


class OpenWeatherProvider(WeatherProvider):
    """OpenWeatherMap 2.5 API, imperial units."""

    name = "openweather"
    label = "OpenWeather"
    base_url = "https://api.openweathermap.org/data/2.5"
    requires_api_key = True

    CITIES = OPEN_WEATHER_CITIES

    def _params(self, city: str) -> dict:
        lat, lon = self._coordinates(city)
        return {"lat": str(lat), "lon": str(lon), "appid": self.api_key, "units": "imperial"}

    @staticmethod
    def _condition(item: dict) -> str:
        weather = item.get("weather") or [{}]
        return weather[0].get("main") or "Unknown"

    async def fetch_one(self, city: str) -> WeatherReading:
        params = self._params(city)
        data = await self._get_json(f"{self.base_url}/weather", params=params)
        self.require(data, "main", context=city)
        self.require(data["main"], "temp", context=city)

        return WeatherReading(
            city=normalize_city(city),
            temperature=round(self.to_float(data["main"]["temp"], "main.temp")),
            humidity=self.to_float(data["main"].get("humidity") or 0, "main.humidity"),
            wind_speed=round(self.to_float((data.get("wind") or {}).get("speed") or 0, "wind.speed")),
            condition=self._condition(data),
            last_update=utc_now(),
            source=self.name,
        )

    async def fetch_forecast(self, city: str, hours: int = 24) -> WeatherReading:
        params = self._params(city)
        count = math.ceil(hours / 3)
        params["cnt"] = str(count)
        data = await self._get_json(f"{self.base_url}/forecast", params=params)
        self.require(data, "list", context=city)

        items = self.require_row(data["list"], 0, "list")[:count]
        if not items:
            raise ProviderError(f"No forecast returned for {city}", provider=self.name)

        for item in items:
            self.require(item, "main", context=city)
            self.require(item["main"], "temp", context=city)
        first = items[0]
        forecast = [
            {
                "time": to_utc_iso(self.to_timestamp(item["dt"], "dt")),
                "temp": round(self.to_float(item["main"].get("temp"), "main.temp")),
            }
            for item in items
            if item.get("dt") is not None
        ]

        return WeatherReading(
            city=normalize_city(city),
            temperature=round(self.to_float(first["main"].get("temp"), "main.temp")),
            humidity=self.to_float(first["main"].get("humidity") or 0, "main.humidity"),
            wind_speed=round(self.to_float((first.get("wind") or {}).get("speed") or 0, "wind.speed")),
            condition=self._condition(first),
            last_update=utc_now(),
            source=self.name,
            forecast_24h=forecast,
        )
