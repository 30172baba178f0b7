"""Scoring engine: (duration, slot, submission time, outcome) -> signed point delta."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from slotcast.entities.prediction import Direction, Duration, PredictionResult
from slotcast.entities.slot import SlotWindow
from slotcast.services.slots import SlotScheduler
from slotcast.utils.timeutil import ensure_utc


def resolve_outcome(direction: Direction | str, price_start: float, price_end: float) -> PredictionResult:
    """Strict comparison: an unchanged price is graded incorrect for both directions."""
    direction = Direction(direction)
    if direction == Direction.UP and price_end > price_start:
        return PredictionResult.CORRECT
    if direction == Direction.DOWN and price_end < price_start:
        return PredictionResult.CORRECT
    return PredictionResult.INCORRECT


def signed_points(outcome: PredictionResult, points_if_correct: int, penalty_if_wrong: int) -> int:
    if outcome == PredictionResult.PENDING:
        raise ValueError("cannot score a pending prediction")
    if outcome == PredictionResult.CORRECT:
        return points_if_correct
    return -penalty_if_wrong


class ScoringEngine:
    def __init__(self, scheduler: SlotScheduler):
        self.scheduler = scheduler

    def payout(
        self,
        duration: Duration | str,
        slot_number: int,
        submitted_at: datetime,
        slot_start: datetime,
        slot_end: datetime | None = None,
    ) -> tuple[int, int]:
        """The ``(points_if_correct, penalty_if_wrong)`` pair promised at submission time."""
        window = self._window(duration, slot_number, ensure_utc(slot_start), slot_end)
        return self.scheduler.points_for_slot(duration, slot_number, submitted_at=submitted_at, window=window)

    def score(
        self,
        duration: Duration | str,
        slot_number: int,
        submitted_at: datetime,
        slot_start: datetime,
        outcome: PredictionResult,
        slot_end: datetime | None = None,
    ) -> int:
        return signed_points(outcome, *self.payout(duration, slot_number, submitted_at, slot_start, slot_end))

    def _window(
        self, duration: Duration | str, slot_number: int, slot_start: datetime, slot_end: datetime | None,
    ) -> SlotWindow:
        window = self.scheduler.current_slot(duration, slot_start)
        if window.slot_number != slot_number:
            # a configured schedule may have changed since submission; trust the stored bounds
            window = replace(window, slot_number=slot_number, start=slot_start)
        if slot_end is not None:
            window = replace(window, end=ensure_utc(slot_end))
        return window
