from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class RuntimeSettings:
    evaluation_interval_seconds: int
    archive_interval_seconds: int
    leaderboard_size: int
    ranking_badge_count: int
    schedule_path: str | None
    price_oracle_url: str
    price_oracle_timeout_seconds: float
    event_publisher: str
    event_channel: str

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            evaluation_interval_seconds=int(os.getenv("EVALUATION_INTERVAL_SECONDS", "60")),
            archive_interval_seconds=int(os.getenv("ARCHIVE_INTERVAL_SECONDS", "3600")),
            leaderboard_size=int(os.getenv("LEADERBOARD_SIZE", "10")),
            ranking_badge_count=int(os.getenv("RANKING_BADGE_COUNT", "4")),
            schedule_path=os.getenv("SLOTCAST_SCHEDULE_PATH") or None,
            price_oracle_url=os.getenv("PRICE_ORACLE_URL", "http://price-oracle:8080/prices/{symbol}"),
            price_oracle_timeout_seconds=float(os.getenv("PRICE_ORACLE_TIMEOUT_SECONDS", "10")),
            event_publisher=os.getenv("EVENT_PUBLISHER", "pg_notify"),
            event_channel=os.getenv("EVENT_CHANNEL", "prediction_evaluated"),
        )
