"""
Data Models
"""
from .readings import (
    CryptoPrice, StockQuote, WeatherReading, PriceHistory, HistoryPoint, MarketStatus,
)
from .bet import Bet, BetType, BetPosition, BetOutcome, ParsedBet, DistanceResult, PnLResult

__all__ = [
    'CryptoPrice', 'StockQuote', 'WeatherReading', 'PriceHistory', 'HistoryPoint', 'MarketStatus',
    'Bet', 'BetType', 'BetPosition', 'BetOutcome', 'ParsedBet', 'DistanceResult', 'PnLResult',
]
