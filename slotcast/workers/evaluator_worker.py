from __future__ import annotations

import asyncio
import logging

from slotcast.config.runtime import RuntimeSettings
from slotcast.config.schedule import load_schedule
from slotcast.db import (
    DBBadgeRepository,
    DBPredictionRepository,
    create_session,
)
from slotcast.infrastructure.http import HttpPriceOracle
from slotcast.infrastructure.publishers import LoggingEventPublisher, PgNotifyEventPublisher
from slotcast.services.badges import BadgeService
from slotcast.services.evaluator import EvaluatorService
from slotcast.services.interfaces.event_publisher import EventPublisher
from slotcast.services.predictions import PredictionService
from slotcast.services.slots import SlotScheduler
from slotcast.services.stats import StatsService


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


def build_event_publisher(settings: RuntimeSettings) -> EventPublisher:
    if settings.event_publisher == "pg_notify":
        return PgNotifyEventPublisher(channel=settings.event_channel)
    if settings.event_publisher == "logging":
        return LoggingEventPublisher()
    raise ValueError(f"Unknown EVENT_PUBLISHER '{settings.event_publisher}' (expected pg_notify or logging)")


def build_service() -> EvaluatorService:
    settings = RuntimeSettings.from_env()
    scheduler = SlotScheduler(load_schedule(settings.schedule_path))

    session = create_session()
    prediction_repository = DBPredictionRepository(session)
    badge_service = BadgeService(
        badge_repository=DBBadgeRepository(session),
        stats_service=StatsService(prediction_repository, scheduler),
        ranking_badge_count=settings.ranking_badge_count,
    )

    prediction_service = PredictionService(
        scheduler=scheduler,
        prediction_repository=prediction_repository,
        badge_service=badge_service,
        event_publisher=build_event_publisher(settings),
    )

    return EvaluatorService(
        prediction_service=prediction_service,
        price_oracle=HttpPriceOracle(
            settings.price_oracle_url, timeout=settings.price_oracle_timeout_seconds,
        ),
        interval_seconds=settings.evaluation_interval_seconds,
    )


async def main() -> None:
    configure_logging()
    logging.getLogger(__name__).info("slotcast evaluator worker bootstrap")
    service = build_service()
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
