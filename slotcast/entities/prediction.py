from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


class Duration(StrEnum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class Direction(StrEnum):
    UP = "up"
    DOWN = "down"


class PredictionStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"  # read-time label only, never persisted
    EVALUATED = "evaluated"


class PredictionResult(StrEnum):
    PENDING = "pending"
    CORRECT = "correct"
    INCORRECT = "incorrect"


def prediction_id(user_id: str, asset_id: str, duration: str, slot_number: int, slot_start: datetime) -> str:
    """Identifier derived from the uniqueness tuple, so a double submit collides on the key."""
    stamp = slot_start.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"PRD_{user_id}_{asset_id}_{duration}_{slot_number}_{stamp}"


@dataclass
class Prediction:
    """One directional call for a single slot. Append-only once evaluated."""
    id: str
    user_id: str
    asset_id: str                                                # ticker symbol handed to the price oracle
    direction: Direction
    duration: Duration
    slot_number: int
    slot_start: datetime
    slot_end: datetime
    price_start: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime | None = None                           # defaults to slot_end
    status: PredictionStatus = PredictionStatus.ACTIVE
    result: PredictionResult = PredictionResult.PENDING
    points_awarded: int = 0
    price_end: float | None = None
    evaluated_at: datetime | None = None
    points_if_correct: int | None = None                         # payout promised at submission
    penalty_if_wrong: int | None = None

    def __post_init__(self) -> None:
        if self.expires_at is None:
            self.expires_at = self.slot_end

    @property
    def uniqueness_key(self) -> tuple[str, str, str, int, datetime]:
        return (self.user_id, self.asset_id, str(self.duration), self.slot_number, self.slot_start)

    def status_at(self, now: datetime) -> PredictionStatus:
        if self.status == PredictionStatus.ACTIVE and now > self.expires_at:
            return PredictionStatus.EXPIRED
        return self.status

    def is_resolved(self) -> bool:
        return self.status == PredictionStatus.EVALUATED


@dataclass(frozen=True)
class EvaluationOutcome:
    prediction_id: str
    result: PredictionResult
    points_awarded: int
    applied: bool = True  # False when the prediction had already been evaluated


@dataclass(frozen=True)
class PredictionEvaluated:
    """Outbound event fired once per applied evaluation (delivery is at-least-once)."""
    prediction_id: str
    user_id: str
    result: PredictionResult
    points_awarded: int
    evaluated_at: datetime

    def to_payload(self) -> dict[str, object]:
        return {
            "prediction_id": self.prediction_id,
            "user_id": self.user_id,
            "result": str(self.result),
            "points_awarded": self.points_awarded,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass(frozen=True)
class SlotSentiment:
    """Up/down split of the calls made on one asset for one slot."""
    asset_id: str
    duration: Duration
    slot_number: int
    slot_start: datetime
    up_count: int
    down_count: int

    @property
    def total(self) -> int:
        return self.up_count + self.down_count

    @property
    def up_percentage(self) -> int:
        return round(self.up_count * 100 / self.total) if self.total else 0

    @property
    def down_percentage(self) -> int:
        return 100 - self.up_percentage if self.total else 0
