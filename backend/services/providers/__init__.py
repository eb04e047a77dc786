"""
Provider adapters - one upstream API each, normalized to the shared readings.
"""
from .base import BaseProvider
from .crypto import CryptoProvider, CoinGeckoProvider, BinanceProvider
from .stocks import StockProvider, YahooProvider, FinnhubProvider, SUPPORTED_SYMBOLS
from .weather import WeatherProvider, OpenMeteoProvider, OpenWeatherProvider, normalize_city

__all__ = [
    'BaseProvider',
    'CryptoProvider', 'CoinGeckoProvider', 'BinanceProvider',
    'StockProvider', 'YahooProvider', 'FinnhubProvider', 'SUPPORTED_SYMBOLS',
    'WeatherProvider', 'OpenMeteoProvider', 'OpenWeatherProvider', 'normalize_city',
]
