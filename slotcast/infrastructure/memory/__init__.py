from .in_memory_badge_repository import InMemoryBadgeRepository
from .in_memory_leaderboard_repository import InMemoryLeaderboardRepository
from .in_memory_prediction_repository import InMemoryPredictionRepository
from .static_price_oracle import StaticPriceOracle
