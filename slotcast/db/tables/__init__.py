from slotcast.db.tables.ledger import PredictionRow, UserStatsRow
from slotcast.db.tables.rankings import BadgeRow, LeaderboardArchiveRow, LeaderboardEntryRow

__all__ = [
    "PredictionRow", "UserStatsRow",
    "LeaderboardArchiveRow", "LeaderboardEntryRow",
    "BadgeRow",
]
