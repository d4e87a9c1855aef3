"""
Bot-wide constants for the Select Start Discord Bot.

This module contains the magic numbers used by the API access layer, the
caches and the monthly ranking so they live in one place.
"""

class RateLimitConstants:
    """Constants for throttling calls to the RetroAchievements API."""

    # One request per interval keeps us under the provider's hard limit
    REQUESTS_PER_INTERVAL = 1
    INTERVAL_SECONDS = 1.2

    # Retry budget for HTTP 429 responses
    MAX_RETRIES = 3
    RETRY_DELAY_SECONDS = 3.0  # Multiplied by the attempt number

    # Per-request network timeout
    REQUEST_TIMEOUT_SECONDS = 10.0

class CacheConstants:
    """Constants for caching behavior."""

    # Default TTL for cached API responses (seconds)
    DEFAULT_CACHE_TTL = 300  # 5 minutes

    # Per-accessor TTLs (seconds)
    GAME_INFO_TTL = 1800        # Game metadata rarely changes
    USER_PROGRESS_TTL = 300
    LEADERBOARD_TTL = 120       # Standings move quickly
    USER_AWARDS_TTL = 120
    RECENT_ACHIEVEMENTS_TTL = 60

    # Provider page size cap for leaderboard entries
    LEADERBOARD_PAGE_SIZE = 500

class EmojiConstants:
    """Constants for the emoji cache tiers."""

    GACHA_CACHE_TTL = 30 * 60          # 30 minutes
    TROPHY_CACHE_TTL = 60 * 60         # 1 hour
    FORMATTED_CACHE_TTL = 2 * 60 * 60  # 2 hours
    MAX_CACHE_SIZE = 2000              # Per cache map

    QUERY_TIMEOUT = 10.0               # Seconds per store query
    REFRESH_DELAY = 1.0                # Small delay to batch refresh triggers
    BACKGROUND_REFRESH_THRESHOLD = 0.8 # Refresh when 80% of TTL elapsed

    # Housekeeping cadence (seconds)
    REFRESH_CHECK_INTERVAL = 60
    CLEANUP_INTERVAL = 5 * 60

    FALLBACK_GLYPH = "❓"
    TROPHY_FALLBACKS = {
        'monthly': "🏆",
        'shadow': "👤",
        'community': "🌟",
    }

class RankingConstants:
    """Constants for the monthly challenge standings."""

    # Only podium positions consult the tiebreaker leaderboard
    PODIUM_WINDOW = 3

    # Completion percentage treated as a full set
    FULL_COMPLETION = 100.0

    # Points per award tier
    MASTERY_POINTS = 7
    BEATEN_POINTS = 4
    PARTICIPATION_POINTS = 1

class UIConstants:
    """Constants for Discord UI elements."""

    # Embed colors
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_RANK_COLOR = 0xffd700     # Gold for the monthly leader
    ERROR_COLOR = 0xe74c3c         # Red for errors

    # Medals for podium ranks
    RANK_EMOJIS = {1: "🥇", 2: "🥈", 3: "🥉"}

    # Award tiers
    MASTERY_EMOJI = "✨"
    BEATEN_EMOJI = "⭐"
    PARTICIPATION_EMOJI = "🏁"

    # Maximum participants rendered in one embed
    MAX_LEADERBOARD_ROWS = 20
