from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from slotcast.entities.prediction import Prediction, PredictionResult, PredictionStatus
from slotcast.entities.slot import Period

ROLLING_ACCURACY_WINDOW = 20


def percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part * 100.0 / whole, 2)


@dataclass
class UserStats:
    """Per-user aggregates, always derived from the prediction ledger."""
    user_id: str
    total_predictions: int = 0          # active + evaluated
    resolved_predictions: int = 0
    correct_predictions: int = 0
    current_streak: int = 0
    best_streak: int = 0
    accuracy_percentage: float = 0.0
    rolling_accuracy_percentage: float = 0.0
    rolling_sample: int = 0
    monthly_score: int = 0
    total_score: int = 0
    period_key: str | None = None       # period monthly_score refers to
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def derive(
        cls,
        user_id: str,
        predictions: Iterable[Prediction],
        period: Period | None = None,
        rolling_window: int = ROLLING_ACCURACY_WINDOW,
        now: datetime | None = None,
    ) -> "UserStats":
        own = [p for p in predictions if p.user_id == user_id]
        resolved = sorted(
            (p for p in own if p.status == PredictionStatus.EVALUATED),
            key=lambda p: (p.evaluated_at, p.id),
        )

        streak = best = correct = total_score = 0
        for prediction in resolved:
            total_score += prediction.points_awarded
            if prediction.result == PredictionResult.CORRECT:
                correct += 1
                streak += 1
                best = max(best, streak)
            else:
                streak = 0

        recent = resolved[-rolling_window:] if rolling_window > 0 else []
        recent_correct = sum(1 for p in recent if p.result == PredictionResult.CORRECT)

        monthly_score = 0
        if period is not None:
            monthly_score = sum(p.points_awarded for p in resolved if period.contains(p.created_at))

        return cls(
            user_id=user_id,
            total_predictions=len(own),
            resolved_predictions=len(resolved),
            correct_predictions=correct,
            current_streak=streak,
            best_streak=best,
            accuracy_percentage=percentage(correct, len(resolved)),
            rolling_accuracy_percentage=percentage(recent_correct, len(recent)),
            rolling_sample=len(recent),
            monthly_score=monthly_score,
            total_score=total_score,
            period_key=period.key if period else None,
            updated_at=now or datetime.now(timezone.utc),
        )
