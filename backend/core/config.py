"""
Application configuration using Pydantic Settings.
"""
from functools import lru_cache
from typing import Optional, List, Dict
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Live Bet Tracker"
    version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Redis (falls back to an in-process cache when unreachable)
    redis_url: str = "redis://localhost:6379/0"
    cache_stale_retention_seconds: int = 86400

    # Provider API keys (Finnhub and OpenWeather are disabled without one)
    coingecko_api_key: Optional[str] = None
    finnhub_api_key: Optional[str] = None
    openweather_api_key: Optional[str] = None
    provider_timeout_seconds: float = 10.0

    # Cache TTLs (seconds)
    crypto_cache_ttl: int = 60
    weather_cache_ttl: int = 300
    stock_cache_ttl: int = 60
    stock_after_hours_cache_ttl: int = 3600
    wallet_cache_ttl: int = 300

    # Advisory daily call limits per provider
    coingecko_daily_limit: int = 10000
    binance_daily_limit: int = 100000
    openmeteo_daily_limit: int = 10000
    openweather_daily_limit: int = 1000
    yahoo_daily_limit: int = 2000
    finnhub_daily_limit: int = 60

    # Live updates
    enable_websocket: bool = True
    broadcast_interval_seconds: float = 60.0

    # Storage
    bets_file: str = "data/bets.json"

    # Polymarket
    polymarket_data_api: str = "https://data-api.polymarket.com"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @property
    def daily_limits(self) -> Dict[str, int]:
        """Daily call limits keyed by provider name."""
        return {
            "coingecko": self.coingecko_daily_limit,
            "binance": self.binance_daily_limit,
            "open-meteo": self.openmeteo_daily_limit,
            "openweather": self.openweather_daily_limit,
            "yahoo": self.yahoo_daily_limit,
            "finnhub": self.finnhub_daily_limit,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
