"""Prediction state machine: ``active -> evaluated``.

``expired`` is never stored; it is the read-time label of an active
prediction whose ``expires_at`` has passed.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from slotcast.entities.prediction import (
    Direction, Duration, EvaluationOutcome, Prediction, PredictionEvaluated,
    PredictionStatus, SlotSentiment, prediction_id,
)
from slotcast.errors import (
    InvalidPrice, PredictionNotExpired, PredictionNotFound, PriceUnavailable,
    SlotLocked, StaleTransition,
)
from slotcast.services.interfaces.event_publisher import EventPublisher
from slotcast.services.interfaces.prediction_repository import PredictionRepository
from slotcast.services.scoring import ScoringEngine, resolve_outcome, signed_points
from slotcast.services.slots import SlotScheduler
from slotcast.utils.timeutil import ensure_utc

if TYPE_CHECKING:
    from slotcast.services.badges import BadgeService


def _is_positive_price(price: float | None) -> bool:
    return price is not None and math.isfinite(price) and price > 0


class PredictionService:
    def __init__(
        self,
        scheduler: SlotScheduler,
        prediction_repository: PredictionRepository,
        scoring_engine: ScoringEngine | None = None,
        badge_service: "BadgeService | None" = None,
        event_publisher: EventPublisher | None = None,
    ):
        self.scheduler = scheduler
        self.prediction_repository = prediction_repository
        self.scoring_engine = scoring_engine or ScoringEngine(scheduler)
        self.badge_service = badge_service
        self.event_publisher = event_publisher
        self.logger = logging.getLogger(__name__)

    def submit(
        self,
        user_id: str,
        asset_id: str,
        direction: Direction | str,
        duration: Duration | str,
        slot_number: int,
        price_start: float | None,
        now: datetime | None = None,
    ) -> Prediction:
        now = ensure_utc(now or datetime.now(timezone.utc))
        direction = Direction(direction)
        duration = Duration(duration)

        window = self.scheduler.submission_slot(duration, slot_number, now)
        if self.scheduler.is_locked(duration, now):
            status = self.scheduler.lock_status(duration, now)
            raise SlotLocked(duration, status.seconds_until_next_slot)
        if not _is_positive_price(price_start):
            raise InvalidPrice(price_start)

        prediction = Prediction(
            id=prediction_id(user_id, asset_id, duration, slot_number, window.start),
            user_id=user_id,
            asset_id=asset_id,
            direction=direction,
            duration=duration,
            slot_number=slot_number,
            slot_start=window.start,
            slot_end=window.end,
            price_start=float(price_start),
            created_at=now,
            expires_at=window.end,
            points_if_correct=window.points_if_correct,
            penalty_if_wrong=window.penalty_if_wrong,
        )
        self.prediction_repository.insert(prediction, period=self.scheduler.period_containing(now))

        self.logger.info(
            "Prediction %s submitted: %s %s %s slot %d",
            prediction.id, user_id, direction, asset_id, slot_number,
        )
        return prediction

    def evaluate(self, prediction_id: str, price_end: float | None, now: datetime | None = None) -> EvaluationOutcome:
        now = ensure_utc(now or datetime.now(timezone.utc))
        prediction = self.prediction_repository.get(prediction_id)
        if prediction is None:
            raise PredictionNotFound(prediction_id)
        if prediction.status != PredictionStatus.ACTIVE:
            return self._stored_outcome(prediction)
        if now < prediction.expires_at:
            raise PredictionNotExpired(prediction_id, prediction.expires_at)
        if not _is_positive_price(price_end):
            raise PriceUnavailable(prediction.asset_id)

        result = resolve_outcome(prediction.direction, prediction.price_start, price_end)
        points = signed_points(result, *self._promised_payout(prediction))

        try:
            self.prediction_repository.mark_evaluated(
                prediction_id,
                result=result,
                points_awarded=points,
                price_end=float(price_end),
                evaluated_at=now,
                period=self.scheduler.period_containing(now),
            )
        except StaleTransition as exc:
            self.logger.debug("Skipping %s: %s", prediction_id, exc)
            return self._stored_outcome(self.prediction_repository.get(prediction_id))

        self.logger.info(
            "Prediction %s evaluated: %s (%+d points)", prediction_id, result, points,
        )
        outcome = EvaluationOutcome(prediction_id=prediction_id, result=result, points_awarded=points)
        self._after_evaluation(prediction, outcome, now)
        return outcome

    # ── read helpers ──

    def user_predictions(
        self, user_id: str, now: datetime | None = None, status: PredictionStatus | str | None = None,
    ) -> list[Prediction]:
        now = ensure_utc(now or datetime.now(timezone.utc))
        predictions = self.prediction_repository.find(user_id=user_id)
        if status is not None:
            wanted = PredictionStatus(status)
            predictions = [p for p in predictions if p.status_at(now) == wanted]
        return sorted(predictions, key=lambda p: (p.created_at, p.id), reverse=True)

    def sentiment(self, asset_id: str, duration: Duration | str, now: datetime | None = None) -> SlotSentiment:
        now = ensure_utc(now or datetime.now(timezone.utc))
        window = self.scheduler.current_slot(duration, now)
        predictions = self.prediction_repository.find(
            asset_id=asset_id, duration=str(window.duration), slot_start=window.start,
        )
        up = sum(1 for p in predictions if p.direction == Direction.UP)
        return SlotSentiment(
            asset_id=asset_id,
            duration=window.duration,
            slot_number=window.slot_number,
            slot_start=window.start,
            up_count=up,
            down_count=len(predictions) - up,
        )

    # ── internals ──

    def _promised_payout(self, prediction: Prediction) -> tuple[int, int]:
        if prediction.points_if_correct is not None and prediction.penalty_if_wrong is not None:
            return prediction.points_if_correct, prediction.penalty_if_wrong
        # rows stored without a payout are priced from the schedule
        return self.scoring_engine.payout(
            prediction.duration,
            prediction.slot_number,
            submitted_at=prediction.created_at,
            slot_start=prediction.slot_start,
            slot_end=prediction.slot_end,
        )

    @staticmethod
    def _stored_outcome(prediction: Prediction) -> EvaluationOutcome:
        return EvaluationOutcome(
            prediction_id=prediction.id,
            result=prediction.result,
            points_awarded=prediction.points_awarded,
            applied=False,
        )

    def _after_evaluation(self, prediction: Prediction, outcome: EvaluationOutcome, now: datetime) -> None:
        if self.event_publisher is not None:
            event = PredictionEvaluated(
                prediction_id=prediction.id,
                user_id=prediction.user_id,
                result=outcome.result,
                points_awarded=outcome.points_awarded,
                evaluated_at=now,
            )
            try:
                self.event_publisher.publish(event)
            except Exception as exc:
                self.logger.exception("Failed to publish evaluation of %s: %s", prediction.id, exc)

        if self.badge_service is not None:
            try:
                self.badge_service.evaluate_user(prediction.user_id, now)
            except Exception as exc:
                # badges are re-derived on the user's next evaluation
                self.logger.exception("Badge check failed for %s: %s", prediction.user_id, exc)
                self.badge_service.rollback()
