"""
Usage Tracker - advisory per-provider daily call counters.

Counting never blocks a call; crossing a limit is only logged.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from models.readings import to_utc_iso


@dataclass
class ProviderUsage:
    service: str
    calls_today: int = 0
    last_reset: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    warned: bool = False


class UsageTracker:
    """Counts provider calls per UTC day."""

    def __init__(self, daily_limits: Optional[Dict[str, int]] = None):
        self.daily_limits = dict(daily_limits or {})
        self._usage: Dict[str, ProviderUsage] = {}
        self._day: date = datetime.now(timezone.utc).date()

    def record(self, service: str):
        """Count one call to ``service``."""
        self._roll_day()
        usage = self._usage.setdefault(service, ProviderUsage(service=service))
        usage.calls_today += 1

        limit = self.daily_limits.get(service)
        if limit and usage.calls_today >= limit and not usage.warned:
            usage.warned = True
            logger.warning(f"Daily call limit reached for {service}: {usage.calls_today}/{limit}")

    def calls_today(self, service: str) -> int:
        self._roll_day()
        usage = self._usage.get(service)
        return usage.calls_today if usage else 0

    def stats(self) -> List[dict]:
        self._roll_day()
        services = sorted(set(self.daily_limits) | set(self._usage))
        result = []
        for service in services:
            usage = self._usage.get(service) or ProviderUsage(service=service)
            limit = self.daily_limits.get(service, 0)
            result.append({
                "service": service,
                "callsToday": usage.calls_today,
                "dailyLimit": limit,
                "percentUsed": (usage.calls_today / limit * 100) if limit > 0 else 0,
                "lastReset": to_utc_iso(usage.last_reset),
            })
        return result

    def reset(self):
        self._usage.clear()
        self._day = datetime.now(timezone.utc).date()
        logger.info("All API usage counters reset")

    def _roll_day(self):
        today = datetime.now(timezone.utc).date()
        if today != self._day:
            self.reset()
