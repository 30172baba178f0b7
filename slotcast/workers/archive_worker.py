"""Archive worker: freezes the previous month's leaderboard and awards ranking badges."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from slotcast.config.runtime import RuntimeSettings
from slotcast.config.schedule import load_schedule
from slotcast.db import (
    DBBadgeRepository,
    DBLeaderboardRepository,
    DBPredictionRepository,
    create_session,
)
from slotcast.entities.leaderboard import Leaderboard
from slotcast.services.badges import BadgeService
from slotcast.services.leaderboard import LeaderboardService
from slotcast.services.stats import StatsService
from slotcast.services.slots import SlotScheduler
from slotcast.utils.timeutil import ensure_utc


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


class LeaderboardArchiveService:
    def __init__(
        self,
        leaderboard_service: LeaderboardService,
        interval_seconds: int = 3600,
    ):
        self.leaderboard_service = leaderboard_service
        self.interval_seconds = interval_seconds
        self.logger = logging.getLogger(__name__)
        self.stop_event = asyncio.Event()

    async def run(self) -> None:
        self.logger.info("archive worker started (interval=%ds)", self.interval_seconds)
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.logger.exception("archive error: %s", exc)
                self._rollback_repositories()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def run_once(self, now: datetime | None = None) -> Leaderboard:
        now = ensure_utc(now or datetime.now(timezone.utc))
        period = self.leaderboard_service.scheduler.previous_period(now)
        return self.leaderboard_service.close_period(period, now)

    async def shutdown(self) -> None:
        self.stop_event.set()

    def _rollback_repositories(self) -> None:
        service = self.leaderboard_service
        repositories = [service.prediction_repository, service.leaderboard_repository]
        if service.badge_service is not None:
            repositories.append(service.badge_service.badge_repository)
        for repo in repositories:
            try:
                repo.rollback()
            except Exception:
                self.logger.debug("rollback failed for %s", type(repo).__name__, exc_info=True)


def build_service() -> LeaderboardArchiveService:
    settings = RuntimeSettings.from_env()
    scheduler = SlotScheduler(load_schedule(settings.schedule_path))

    session = create_session()
    prediction_repository = DBPredictionRepository(session)
    badge_service = BadgeService(
        badge_repository=DBBadgeRepository(session),
        stats_service=StatsService(prediction_repository, scheduler),
        ranking_badge_count=settings.ranking_badge_count,
    )

    leaderboard_service = LeaderboardService(
        prediction_repository=prediction_repository,
        leaderboard_repository=DBLeaderboardRepository(session),
        scheduler=scheduler,
        badge_service=badge_service,
        default_limit=settings.leaderboard_size,
    )
    return LeaderboardArchiveService(
        leaderboard_service, interval_seconds=settings.archive_interval_seconds,
    )


async def main() -> None:
    configure_logging()
    logging.getLogger(__name__).info("slotcast archive worker bootstrap")
    service = build_service()
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
