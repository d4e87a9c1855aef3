"""
Housekeeping Cog - Background Tasks & Admin Commands

Runs the emoji cache maintenance loops (refresh check and periodic sweep)
and provides owner commands to force a reload or inspect cache statistics.
"""

import discord
from discord.ext import commands, tasks
from datetime import datetime, timezone

from select_start.constants import EmojiConstants
from select_start.services.emoji_cache import EmojiCacheService
import logging

logger = logging.getLogger(__name__)


class HousekeepingCog(commands.Cog):
    """Background maintenance and cleanup tasks"""

    def __init__(self, bot):
        self.bot = bot
        self.emoji_cache: EmojiCacheService = bot.context.emoji_cache
        self.logger = logger

    async def cog_load(self):
        """Start background tasks once the cog is loaded"""
        self.check_emoji_refresh.start()
        self.sweep_emoji_cache.start()
        self.logger.info("HousekeepingCog: Background tasks started")

    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.check_emoji_refresh.cancel()
        self.sweep_emoji_cache.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")

    @tasks.loop(seconds=EmojiConstants.REFRESH_CHECK_INTERVAL)
    async def check_emoji_refresh(self):
        """Schedule emoji reloads when a domain nears its TTL"""
        try:
            scheduled = self.emoji_cache.refresh_if_due()
            if scheduled:
                self.logger.debug(f"Scheduled emoji refresh for: {', '.join(scheduled)}")
        except Exception as e:
            self.logger.error(f"Error in emoji refresh check: {e}", exc_info=True)

    @tasks.loop(seconds=EmojiConstants.CLEANUP_INTERVAL)
    async def sweep_emoji_cache(self):
        """Evict expired markup and enforce cache size limits"""
        try:
            self.emoji_cache.cleanup_expired_entries()
            self.emoji_cache.enforce_cache_size_limits()
        except Exception as e:
            self.logger.error(f"Error in emoji cache sweep: {e}", exc_info=True)

    @check_emoji_refresh.before_loop
    @sweep_emoji_cache.before_loop
    async def before_emoji_tasks(self):
        """Wait for bot to be ready before starting maintenance"""
        await self.bot.wait_until_ready()

    @commands.command(name="refresh_emojis")
    @commands.is_owner()
    async def refresh_emojis(self, ctx):
        """Reload every emoji cache from the database (owner only)"""
        results = await self.emoji_cache.refresh_all()

        embed = discord.Embed(
            title="🔄 Emoji Cache Refreshed",
            color=discord.Color.green(),
            timestamp=datetime.now(timezone.utc)
        )
        for domain, result in results.items():
            if result.success:
                value = f"✅ {result.count} entries" if not result.skipped else "⏳ Refresh already running"
            else:
                value = f"❌ {result.error}"
                embed.color = discord.Color.orange()
            embed.add_field(name=domain.title(), value=value, inline=True)

        await ctx.send(embed=embed)
        self.logger.info(f"Emoji refresh executed by {ctx.author.id}")

    @commands.command(name="emoji_stats")
    @commands.is_owner()
    async def emoji_stats(self, ctx):
        """Show emoji cache hit rates and sizes (owner only)"""
        stats = self.emoji_cache.get_cache_stats()

        embed = discord.Embed(title="📊 Emoji Cache Statistics", color=discord.Color.blue())
        for domain in ('gacha', 'trophy', 'formatted'):
            section = stats[domain]
            embed.add_field(
                name=domain.title(),
                value=(
                    f"Size: {section['size']}\n"
                    f"Hits: {section['hits']} / Misses: {section['misses']}\n"
                    f"Hit rate: {section['hit_rate']:.1f}%"
                ),
                inline=True
            )
        overall = stats['overall']
        embed.add_field(
            name="Overall",
            value=f"Refreshes: {overall['refresh_count']}\nErrors: {overall['error_count']}",
            inline=False
        )
        await ctx.send(embed=embed)


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
