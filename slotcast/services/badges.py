"""Badge rule engine.

Rules are plain data: a badge type, display strings and a predicate over
``UserStats``. Awards are insert-if-absent, so re-running a check on
unchanged stats writes nothing.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from slotcast.entities.badge import LIFETIME_SCOPE, Badge, BadgeRule, badge_id
from slotcast.entities.leaderboard import Leaderboard
from slotcast.entities.stats import ROLLING_ACCURACY_WINDOW, UserStats
from slotcast.services.interfaces.badge_repository import BadgeRepository
from slotcast.services.stats import StatsService

STREAK_THRESHOLDS = (3, 5, 10)
ACCURACY_THRESHOLDS = (70, 80, 90)
ACCURACY_MIN_PREDICTIONS = ROLLING_ACCURACY_WINDOW
VOLUME_THRESHOLDS = (10, 25, 50, 100)
RANKING_BADGE_TYPES = ("1st_place", "2nd_place", "3rd_place", "4th_place")


def _streak_rule(threshold: int) -> BadgeRule:
    return BadgeRule(
        badge_type=f"streak_{threshold}",
        name=f"{threshold} in a Row",
        description=f"{threshold} correct predictions in a row",
        predicate=lambda stats: stats.current_streak >= threshold,
        metadata={"streakCount": threshold},
    )


def _accuracy_rule(threshold: int) -> BadgeRule:
    return BadgeRule(
        badge_type=f"accuracy_{threshold}",
        name=f"{threshold}% Accurate",
        description=(
            f"{threshold}% or higher hit rate over the last {ACCURACY_MIN_PREDICTIONS} resolved predictions"
        ),
        predicate=lambda stats: (
            stats.rolling_sample >= ACCURACY_MIN_PREDICTIONS
            and stats.rolling_accuracy_percentage >= threshold
        ),
        metadata={"accuracyThreshold": threshold, "minPredictions": ACCURACY_MIN_PREDICTIONS},
    )


def _volume_rule(threshold: int) -> BadgeRule:
    return BadgeRule(
        badge_type=f"volume_{threshold}",
        name=f"{threshold} Predictions",
        description=f"{threshold} predictions resolved",
        predicate=lambda stats: stats.resolved_predictions >= threshold,
        metadata={"milestone": threshold},
    )


DEFAULT_BADGE_RULES: list[BadgeRule] = [
    BadgeRule(
        badge_type="starter",
        name="Starter",
        description="First correct prediction",
        predicate=lambda stats: stats.correct_predictions >= 1,
        metadata={"milestone": 1},
    ),
    *(_streak_rule(threshold) for threshold in STREAK_THRESHOLDS),
    *(_accuracy_rule(threshold) for threshold in ACCURACY_THRESHOLDS),
    *(_volume_rule(threshold) for threshold in VOLUME_THRESHOLDS),
]


class BadgeService:
    def __init__(
        self,
        badge_repository: BadgeRepository,
        stats_service: StatsService | None = None,
        rules: list[BadgeRule] | None = None,
        ranking_badge_count: int = len(RANKING_BADGE_TYPES),
    ):
        self.badge_repository = badge_repository
        self.stats_service = stats_service
        self.rules = list(DEFAULT_BADGE_RULES if rules is None else rules)
        self.ranking_badge_count = min(ranking_badge_count, len(RANKING_BADGE_TYPES))
        self.logger = logging.getLogger(__name__)

    def evaluate_user(self, user_id: str, now: datetime | None = None) -> list[Badge]:
        if self.stats_service is None:
            raise RuntimeError("evaluate_user needs a stats service")
        return self.award_for_stats(self.stats_service.for_user(user_id, now), now)

    def award_for_stats(self, stats: UserStats, now: datetime | None = None) -> list[Badge]:
        now = now or datetime.now(timezone.utc)
        held = {
            badge.badge_type
            for badge in self.badge_repository.find(user_id=stats.user_id, scope=LIFETIME_SCOPE)
        }

        awarded: list[Badge] = []
        for rule in self.rules:
            if rule.badge_type in held or not rule.predicate(stats):
                continue
            badge = Badge(
                id=badge_id(stats.user_id, rule.badge_type, LIFETIME_SCOPE),
                user_id=stats.user_id,
                badge_type=rule.badge_type,
                scope=LIFETIME_SCOPE,
                metadata={"name": rule.name, **rule.metadata},
                awarded_at=now,
            )
            if self.badge_repository.award(badge):
                awarded.append(badge)

        if awarded:
            self.logger.info(
                "Awarded %s to %s", ", ".join(b.badge_type for b in awarded), stats.user_id,
            )
        return awarded

    def award_ranking_badges(self, leaderboard: Leaderboard, now: datetime | None = None) -> list[Badge]:
        """Fixed badges for the top ranks of a closed period, scoped to that period."""
        now = now or datetime.now(timezone.utc)
        awarded: list[Badge] = []
        for entry in leaderboard.entries:
            if entry.rank > self.ranking_badge_count:
                continue
            badge_type = RANKING_BADGE_TYPES[entry.rank - 1]
            badge = Badge(
                id=badge_id(entry.user_id, badge_type, leaderboard.period),
                user_id=entry.user_id,
                badge_type=badge_type,
                scope=leaderboard.period,
                metadata={"rank": entry.rank, "totalScore": entry.total_score},
                awarded_at=now,
            )
            if self.badge_repository.award(badge):
                awarded.append(badge)

        self.logger.info("Awarded %d ranking badges for %s", len(awarded), leaderboard.period)
        return awarded

    def badges_for(self, user_id: str, scope: str | None = None) -> list[Badge]:
        badges = self.badge_repository.find(user_id=user_id, scope=scope)
        return sorted(badges, key=lambda b: (b.awarded_at, b.badge_type))

    def badge_statistics(self) -> dict[str, int]:
        counts = {rule.badge_type: 0 for rule in self.rules}
        counts.update({badge_type: 0 for badge_type in RANKING_BADGE_TYPES[: self.ranking_badge_count]})
        counts.update(self.badge_repository.count_by_type())
        return counts

    def rollback(self) -> None:
        self.badge_repository.rollback()
