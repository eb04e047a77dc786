"""
Error taxonomy for the tracker.

Everything raised on purpose derives from ``TrackerError`` so the HTTP layer
can map the whole family to JSON error bodies in one place.
"""
from typing import Any, Dict, Optional


class TrackerError(Exception):
    """Base exception for tracker errors."""

    status_code = 500

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}


class ProviderError(TrackerError):
    """An upstream provider returned an error, timed out, or sent a malformed payload."""

    status_code = 503

    def __init__(self, message: str = "Provider error", provider: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.provider = provider


class ProviderRateLimited(ProviderError):
    """Upstream answered HTTP 429."""


class UnsupportedAsset(TrackerError):
    """Symbol or city is not in the provider's static table."""

    status_code = 400

    def __init__(self, message: str = "Unsupported asset", asset: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.asset = asset


class NoDataAvailable(TrackerError):
    """Every provider failed and the cache holds nothing for the key."""

    status_code = 503


class ValidationError(TrackerError):
    """Malformed request parameters or an illegal mutation."""

    status_code = 400


class BetNotFound(TrackerError):
    status_code = 404

    def __init__(self, bet_id: str):
        super().__init__(f"Bet with ID {bet_id} not found", {"bet_id": bet_id})
        self.bet_id = bet_id
