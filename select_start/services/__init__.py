"""
Services package for the Select Start bot.

RetroAchievements access, response and emoji caching, monthly standings.
"""

from .base import BaseService
from .rate_limiter import RateLimiter
from .response_cache import ResponseCache
from .achievements_client import AchievementsClient
from .emoji_cache import EmojiCacheService
from .monthly_leaderboard import MonthlyLeaderboardService

__all__ = [
    'BaseService',
    'RateLimiter',
    'ResponseCache',
    'AchievementsClient',
    'EmojiCacheService',
    'MonthlyLeaderboardService',
]
