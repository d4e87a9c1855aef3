"""
Application context: owns one instance of every long-lived service.

The bot builds a context at startup and hands it to cogs. Tests build their
own contexts so no state leaks between them.
"""

import logging
from typing import Optional

from select_start.config import Config
from select_start.database.database import Database
from select_start.services.achievements_client import AchievementsClient
from select_start.services.emoji_cache import EmojiCacheConfig, EmojiCacheService
from select_start.services.monthly_leaderboard import MonthlyLeaderboardService
from select_start.services.rate_limiter import RateLimiter
from select_start.utils.ranking import LeaderboardRanker

logger = logging.getLogger(__name__)


class ApplicationContext:
    """Wires the rate limiter, API client, caches and ranking together."""

    def __init__(
        self,
        db: Database,
        client: Optional[AchievementsClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        emoji_config: Optional[EmojiCacheConfig] = None,
        podium_window: Optional[int] = None,
    ):
        self.db = db
        self.rate_limiter = rate_limiter or RateLimiter(
            requests_per_interval=Config.API_REQUESTS_PER_INTERVAL,
            interval=Config.API_INTERVAL,
            max_retries=Config.API_MAX_RETRIES,
            retry_delay=Config.API_RETRY_DELAY,
        )
        self.client = client or AchievementsClient.from_config(rate_limiter=self.rate_limiter)
        self.ranker = LeaderboardRanker(
            podium_window=Config.PODIUM_WINDOW if podium_window is None else podium_window
        )
        self.emoji_cache = EmojiCacheService(db, config=emoji_config)
        self.monthly_leaderboard: Optional[MonthlyLeaderboardService] = None

    async def start(self):
        """Open the database and warm the emoji cache."""
        if self.db.engine is None:
            await self.db.initialize()

        self.monthly_leaderboard = MonthlyLeaderboardService(
            self.db.session_factory,
            self.client,
            ranker=self.ranker,
            tiebreaker_max_entries=Config.TIEBREAKER_MAX_ENTRIES,
        )

        results = await self.emoji_cache.initialize()
        for domain, result in results.items():
            if not result.success:
                logger.warning(f"Initial {domain} emoji load incomplete: {result.error}")

        logger.info("Application context started")

    async def close(self):
        """Stop background work and release network and database resources."""
        await self.emoji_cache.shutdown()
        await self.client.close()
        await self.db.close()
        logger.info("Application context closed")
