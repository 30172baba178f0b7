from .pg_notify import notify
from .repositories import DBBadgeRepository, DBLeaderboardRepository, DBPredictionRepository
from .session import create_session, database_url, engine
