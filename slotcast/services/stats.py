from __future__ import annotations

from datetime import datetime, timezone

from slotcast.entities.stats import UserStats
from slotcast.services.interfaces.prediction_repository import PredictionRepository
from slotcast.services.slots import SlotScheduler
from slotcast.utils.timeutil import ensure_utc


class StatsService:
    """Reads ``UserStats`` straight from the prediction ledger."""

    def __init__(self, prediction_repository: PredictionRepository, scheduler: SlotScheduler):
        self.prediction_repository = prediction_repository
        self.scheduler = scheduler

    def for_user(self, user_id: str, now: datetime | None = None) -> UserStats:
        now = ensure_utc(now or datetime.now(timezone.utc))
        predictions = self.prediction_repository.find(user_id=user_id)
        return UserStats.derive(
            user_id, predictions, period=self.scheduler.period_containing(now), now=now,
        )

    def cached(self, user_id: str) -> UserStats:
        """Last stats row written alongside a ledger change; empty stats for unknown users."""
        return self.prediction_repository.fetch_user_stats(user_id) or UserStats(user_id=user_id)
