"""
Bet Store - tracked bets held in memory and persisted to a JSON file.

The file is read once at start-up and rewritten after every mutation so the
bet list survives restarts.
"""
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from core.exceptions import BetNotFound, ValidationError
from models.bet import Bet, BetOutcome
from models.readings import utc_now, to_utc_iso

# Fields a client may change through update()
UPDATABLE_FIELDS = {
    "market", "position", "amount", "shares", "entry_odds", "resolve_date",
    "resolved", "outcome", "type", "asset", "threshold", "threshold_unit",
    "category", "data_source", "current_odds",
}


class BetStore:
    """CRUD over the bet list with JSON file persistence."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path) if path else None
        self._bets: Dict[str, Bet] = {}
        self._load()

    # ========================================================================
    # Queries
    # ========================================================================

    def count(self) -> int:
        return len(self._bets)

    def all(self) -> List[Bet]:
        """Every bet, newest first."""
        return sorted(self._bets.values(), key=lambda b: b.created_at, reverse=True)

    def list(self, page: int = 1, limit: int = 20) -> List[Bet]:
        start = (max(page, 1) - 1) * limit
        return self.all()[start:start + limit]

    def get(self, bet_id: str) -> Bet:
        bet = self._bets.get(bet_id)
        if bet is None:
            raise BetNotFound(bet_id)
        return bet

    def unresolved(self) -> List[Bet]:
        return [b for b in self.all() if not b.resolved]

    def resolved(self) -> List[Bet]:
        """Resolved bets, most recently updated first."""
        done = [b for b in self._bets.values() if b.resolved]
        return sorted(done, key=lambda b: b.updated_at, reverse=True)

    def find_by_condition_id(self, condition_id: str) -> Optional[Bet]:
        for bet in self._bets.values():
            if bet.polymarket_condition_id == condition_id:
                return bet
        return None

    # ========================================================================
    # Mutations
    # ========================================================================

    def create(self, bet: Bet) -> Bet:
        if bet.id in self._bets:
            raise ValidationError(f"Bet with ID {bet.id} already exists")
        self._bets[bet.id] = bet
        self._save()
        logger.info(f"Created new bet: {bet.id} - {bet.market}")
        return bet

    def update(self, bet_id: str, changes: Dict[str, Any]) -> Bet:
        """Apply ``changes`` (snake_case attribute names) to an unresolved bet."""
        bet = self.get(bet_id)
        if bet.resolved:
            raise ValidationError(f"Bet {bet_id} is resolved and can no longer be modified")

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            updated = replace(bet, **changes, updated_at=utc_now())
        except ValueError as e:
            raise ValidationError(str(e)) from e

        # Setting a final outcome resolves the bet
        if updated.outcome != BetOutcome.PENDING and "resolved" not in changes:
            updated.resolved = True

        self._bets[bet_id] = updated
        self._save()
        logger.info(f"Updated bet: {bet_id}")
        return updated

    def delete(self, bet_id: str):
        self.get(bet_id)
        del self._bets[bet_id]
        self._save()
        logger.info(f"Deleted bet: {bet_id}")

    def record_snapshot(
        self,
        bet_id: str,
        current_value: float,
        pnl: Optional[float] = None,
        current_odds: Optional[float] = None,
    ) -> Optional[Bet]:
        """Write the latest computed value onto an unresolved bet; resolved bets are left alone."""
        bet = self._bets.get(bet_id)
        if bet is None or bet.resolved:
            return None

        bet.current_value = current_value
        if pnl is not None:
            bet.pnl = pnl
        if current_odds is not None:
            bet.current_odds = current_odds
        bet.updated_at = utc_now()
        self._save()
        return bet

    # ========================================================================
    # Persistence
    # ========================================================================

    def _load(self):
        """Load bets from disk."""
        if self.path is None or not self.path.exists():
            return

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load bets from {self.path}: {e}")
            return

        for item in data.get("bets", []):
            try:
                bet = Bet.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to restore bet: {e}")
                continue
            self._bets[bet.id] = bet

        logger.info(f"Loaded {len(self._bets)} bets from {self.path}")

    def _save(self):
        """Save bets to disk."""
        if self.path is None:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "bets": [b.to_dict() for b in self._bets.values()],
                "saved_at": to_utc_iso(utc_now()),
            }
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save bets to {self.path}: {e}")
