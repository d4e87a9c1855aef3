import os
from dotenv import load_dotenv

from select_start.constants import CacheConstants, RankingConstants, RateLimitConstants

load_dotenv()

class Config:
    """Bot configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))

    # RetroAchievements credentials
    RA_USERNAME = os.getenv('RA_USERNAME', '')
    RA_API_KEY = os.getenv('RA_API_KEY', '')
    RA_API_BASE_URL = os.getenv('RA_API_BASE_URL', 'https://retroachievements.org/API/')
    RA_USER_AGENT = os.getenv('RA_USER_AGENT', 'Select-Start-Bot/1.0')

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///selectstart.db')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Outbound API throttling (seconds)
    API_REQUESTS_PER_INTERVAL = int(os.getenv('API_REQUESTS_PER_INTERVAL', RateLimitConstants.REQUESTS_PER_INTERVAL))
    API_INTERVAL = float(os.getenv('API_INTERVAL', RateLimitConstants.INTERVAL_SECONDS))
    API_MAX_RETRIES = int(os.getenv('API_MAX_RETRIES', RateLimitConstants.MAX_RETRIES))
    API_RETRY_DELAY = float(os.getenv('API_RETRY_DELAY', RateLimitConstants.RETRY_DELAY_SECONDS))
    API_REQUEST_TIMEOUT = float(os.getenv('API_REQUEST_TIMEOUT', RateLimitConstants.REQUEST_TIMEOUT_SECONDS))

    # Response cache TTLs (seconds)
    CACHE_TTL_DEFAULT = int(os.getenv('CACHE_TTL_DEFAULT', CacheConstants.DEFAULT_CACHE_TTL))
    CACHE_TTL_GAME_INFO = int(os.getenv('CACHE_TTL_GAME_INFO', CacheConstants.GAME_INFO_TTL))
    CACHE_TTL_USER_PROGRESS = int(os.getenv('CACHE_TTL_USER_PROGRESS', CacheConstants.USER_PROGRESS_TTL))
    CACHE_TTL_LEADERBOARD = int(os.getenv('CACHE_TTL_LEADERBOARD', CacheConstants.LEADERBOARD_TTL))

    # Monthly challenge ranking
    PODIUM_WINDOW = int(os.getenv('PODIUM_WINDOW', RankingConstants.PODIUM_WINDOW))
    TIEBREAKER_MAX_ENTRIES = int(os.getenv('TIEBREAKER_MAX_ENTRIES', 1000))

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        return []

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.RA_USERNAME or not cls.RA_API_KEY:
            raise ValueError("RA_USERNAME and RA_API_KEY are required")
        if cls.API_REQUESTS_PER_INTERVAL < 1:
            raise ValueError("API_REQUESTS_PER_INTERVAL must be at least 1")
        if cls.API_INTERVAL <= 0:
            raise ValueError("API_INTERVAL must be positive")
        if cls.PODIUM_WINDOW < 0:
            raise ValueError("PODIUM_WINDOW cannot be negative")
