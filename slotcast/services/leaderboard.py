"""Leaderboard ranker: per-period aggregation, a single composite sort key, immutable archives."""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable

from slotcast.entities.leaderboard import Leaderboard, LeaderboardEntry, LeaderboardStats, UserAggregate
from slotcast.entities.prediction import Prediction, PredictionResult, PredictionStatus
from slotcast.entities.slot import Period
from slotcast.services.interfaces.leaderboard_repository import LeaderboardRepository
from slotcast.services.interfaces.prediction_repository import PredictionRepository
from slotcast.services.slots import SlotScheduler
from slotcast.utils.timeutil import UTC_MIN, ensure_utc

if TYPE_CHECKING:
    from slotcast.services.badges import BadgeService

RANKED_STATUSES = [PredictionStatus.ACTIVE, PredictionStatus.EVALUATED]


def aggregate(predictions: Iterable[Prediction], period_start: datetime | None = None) -> list[UserAggregate]:
    """Per-user totals. A final score of 0 counts as reached at ``period_start``."""
    by_user: dict[str, list[Prediction]] = defaultdict(list)
    for prediction in predictions:
        if prediction.status in RANKED_STATUSES:
            by_user[prediction.user_id].append(prediction)

    aggregates = []
    for user_id, rows in by_user.items():
        resolved = sorted(
            (p for p in rows if p.status == PredictionStatus.EVALUATED),
            key=lambda p: (p.evaluated_at, p.id),
        )
        total_score = sum(p.points_awarded for p in resolved)

        # first moment the running total equals the final score; every user starts the period on 0
        reached_at = None
        if total_score == 0:
            reached_at = period_start
        else:
            running = 0
            for prediction in resolved:
                running += prediction.points_awarded
                if running == total_score:
                    reached_at = prediction.evaluated_at
                    break

        aggregates.append(
            UserAggregate(
                user_id=user_id,
                total_score=total_score,
                total_predictions=len(rows),
                resolved_predictions=len(resolved),
                correct_predictions=sum(1 for p in resolved if p.result == PredictionResult.CORRECT),
                score_reached_at=reached_at,
            )
        )
    return aggregates


def sort_key(aggregate: UserAggregate) -> tuple:
    """Score desc, correct desc, earliest arrival at the final score, then user id.

    A user who ends on 0 reached it when the period opened, even if the
    running total moved away and came back. Without a timestamp (no period
    start given and no evaluation) a user sorts after every timestamp.
    """
    reached = aggregate.score_reached_at
    return (
        -aggregate.total_score,
        -aggregate.correct_predictions,
        reached is None,
        reached or UTC_MIN,
        aggregate.user_id,
    )


def rank(
    aggregates: Iterable[UserAggregate],
    period: str,
    limit: int | None = None,
    share_first_place: bool = False,
) -> list[LeaderboardEntry]:
    """Order and number aggregates.

    With ``share_first_place`` every user tied with the leader on score and
    correct count gets rank 1 and is kept even beyond ``limit``; the rows after
    them continue at rank 2. Otherwise ranks are ``1..k`` in sort order.
    """
    ordered = sorted(aggregates, key=sort_key)
    if not ordered:
        return []

    leaders = 1
    if share_first_place:
        top = (ordered[0].total_score, ordered[0].correct_predictions)
        while leaders < len(ordered) and (
            ordered[leaders].total_score, ordered[leaders].correct_predictions
        ) == top:
            leaders += 1

    if limit is not None:
        ordered = ordered[: max(limit, leaders if share_first_place else 0)]

    return [
        LeaderboardEntry.from_aggregate(period, 1 if index < leaders else index - leaders + 2, row)
        for index, row in enumerate(ordered)
    ]


class LeaderboardService:
    def __init__(
        self,
        prediction_repository: PredictionRepository,
        leaderboard_repository: LeaderboardRepository,
        scheduler: SlotScheduler,
        badge_service: "BadgeService | None" = None,
        default_limit: int = 10,
    ):
        self.prediction_repository = prediction_repository
        self.leaderboard_repository = leaderboard_repository
        self.scheduler = scheduler
        self.badge_service = badge_service
        self.default_limit = default_limit
        self.logger = logging.getLogger(__name__)

    def aggregate_period(self, period: Period) -> list[UserAggregate]:
        predictions = self.prediction_repository.find(
            status=RANKED_STATUSES, created_since=period.start, created_until=period.end,
        )
        return aggregate(predictions, period_start=period.start)

    def live_leaderboard(self, now: datetime | None = None, limit: int | None = None) -> Leaderboard:
        now = ensure_utc(now or datetime.now(timezone.utc))
        period = self.scheduler.period_containing(now)
        entries = rank(
            self.aggregate_period(period), period.key,
            limit=limit or self.default_limit, share_first_place=True,
        )
        return Leaderboard(period=period.key, entries=entries, archived=False, generated_at=now)

    def leaderboard(self, period_key: str, now: datetime | None = None, limit: int | None = None) -> Leaderboard:
        """Live ranking for the open period, the archived snapshot for a closed one."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        period = self.scheduler.period_for_key(period_key)
        if period.contains(now):
            return self.live_leaderboard(now, limit)
        if not period.is_closed(now):
            return Leaderboard(period=period.key, generated_at=now)

        snapshot = self.leaderboard_repository.get_snapshot(period.key)
        if snapshot is None:
            snapshot = self.close_period(period, now)
        return snapshot.top(limit or self.default_limit)

    def close_period(self, period: Period, now: datetime | None = None) -> Leaderboard:
        """Archive a closed period once; later calls return the stored snapshot.

        The ranking-badge pass runs on every call and is idempotent, so a crash
        between archiving and awarding is repaired by the next run.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        if not period.is_closed(now):
            raise ValueError(f"period {period.key} is still open until {period.end.isoformat()}")

        snapshot = self.leaderboard_repository.get_snapshot(period.key)
        if snapshot is None:
            entries = rank(self.aggregate_period(period), period.key)
            candidate = Leaderboard(period=period.key, entries=entries, archived=True, generated_at=now)
            if self.leaderboard_repository.save_snapshot(candidate):
                self.logger.info("Archived leaderboard %s with %d entries", period.key, len(entries))
                snapshot = candidate
            else:
                # another archiver got there first
                snapshot = self.leaderboard_repository.get_snapshot(period.key) or candidate

        if self.badge_service is not None:
            self.badge_service.award_ranking_badges(snapshot, now)
        return snapshot

    def user_rank(self, user_id: str, period_key: str | None = None, now: datetime | None = None) -> LeaderboardEntry | None:
        now = ensure_utc(now or datetime.now(timezone.utc))
        period = self.scheduler.period_for_key(period_key) if period_key else self.scheduler.period_containing(now)
        if period.is_closed(now):
            snapshot = self.leaderboard_repository.get_snapshot(period.key)
            if snapshot is not None:
                return snapshot.entry_for(user_id)
        entries = rank(self.aggregate_period(period), period.key, share_first_place=period.contains(now))
        return Leaderboard(period=period.key, entries=entries).entry_for(user_id)

    def user_history(self, user_id: str) -> list[LeaderboardEntry]:
        entries = self.leaderboard_repository.find_entries(user_id=user_id)
        return sorted(entries, key=lambda e: e.period, reverse=True)

    def stats(self, now: datetime | None = None) -> LeaderboardStats:
        now = ensure_utc(now or datetime.now(timezone.utc))
        current = self.scheduler.period_containing(now)
        previous = self.scheduler.previous_period(now)
        return LeaderboardStats(
            current_period=current.key,
            current_participants=len(self.aggregate_period(current)),
            previous_period=previous.key,
            previous_participants=len(self.aggregate_period(previous)),
            seconds_until_period_end=self.scheduler.time_until_period_end(now),
        )
