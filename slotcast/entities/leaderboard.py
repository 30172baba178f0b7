from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from slotcast.entities.stats import percentage


@dataclass(frozen=True)
class UserAggregate:
    """Per-user totals for one period, before ordering."""
    user_id: str
    total_score: int
    total_predictions: int
    resolved_predictions: int
    correct_predictions: int
    score_reached_at: datetime | None   # first time the running total hit total_score

    @property
    def accuracy_percentage(self) -> float:
        return percentage(self.correct_predictions, self.resolved_predictions)


@dataclass(frozen=True)
class LeaderboardEntry:
    period: str
    user_id: str
    rank: int
    total_score: int
    total_predictions: int
    correct_predictions: int
    accuracy_percentage: float
    score_reached_at: datetime | None = None

    @classmethod
    def from_aggregate(cls, period: str, rank: int, aggregate: UserAggregate) -> "LeaderboardEntry":
        return cls(
            period=period,
            user_id=aggregate.user_id,
            rank=rank,
            total_score=aggregate.total_score,
            total_predictions=aggregate.total_predictions,
            correct_predictions=aggregate.correct_predictions,
            accuracy_percentage=aggregate.accuracy_percentage,
            score_reached_at=aggregate.score_reached_at,
        )


@dataclass
class Leaderboard:
    period: str
    entries: list[LeaderboardEntry] = field(default_factory=list)
    archived: bool = False
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def entry_for(self, user_id: str) -> LeaderboardEntry | None:
        for entry in self.entries:
            if entry.user_id == user_id:
                return entry
        return None

    def top(self, limit: int) -> "Leaderboard":
        return Leaderboard(
            period=self.period,
            entries=self.entries[:limit],
            archived=self.archived,
            generated_at=self.generated_at,
        )


@dataclass(frozen=True)
class LeaderboardStats:
    current_period: str
    current_participants: int
    previous_period: str
    previous_participants: int
    seconds_until_period_end: float
