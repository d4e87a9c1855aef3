"""
Centralized error embeds for consistent error handling across the bot.

Provides standardized error messages so every command reports provider and
configuration problems the same way.
"""

import discord

from select_start.utils.exceptions import (
    AchievementsAPIError, ProviderNotFoundError, RateLimitExceededError
)


class ErrorEmbeds:
    """Centralized error embed factory for consistent error handling."""

    @staticmethod
    def provider_error(error: AchievementsAPIError) -> discord.Embed:
        """Create embed for a RetroAchievements API failure."""
        if isinstance(error, RateLimitExceededError):
            title = "RetroAchievements Busy"
            color = discord.Color.orange()
        elif isinstance(error, ProviderNotFoundError):
            title = "Not Found"
            color = discord.Color.red()
        else:
            title = "RetroAchievements Unavailable"
            color = discord.Color.red()

        return discord.Embed(title=title, description=error.user_message, color=color)

    @staticmethod
    def no_active_challenge() -> discord.Embed:
        """Create embed for when no monthly challenge is configured."""
        return discord.Embed(
            title="No Active Challenge",
            description="There is no monthly challenge configured for this month yet.",
            color=discord.Color.orange()
        )

    @staticmethod
    def database_error() -> discord.Embed:
        """Create embed for database-related errors."""
        return discord.Embed(
            title="Database Error",
            description="A database error occurred. Please try again later or contact an administrator.",
            color=discord.Color.red()
        )

