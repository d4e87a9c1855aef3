import asyncio
import logging
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from select_start.config import Config
from select_start.database.database import Database
from select_start.services.context import ApplicationContext
from select_start.utils.logger import quiet_library_loggers, setup_logger

EXTENSIONS = (
    'select_start.cogs.leaderboard',
    'select_start.cogs.housekeeping',
)

class SelectStartBot(commands.Bot):
    """Discord bot owning one ApplicationContext for its lifetime."""

    def __init__(self, context_factory=None):
        intents = discord.Intents.default()
        intents.message_content = True  # Owner prefix commands

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None,
            owner_id=Config.OWNER_DISCORD_ID or None
        )

        self.tree.on_error = self.on_app_command_error
        self._context_factory = context_factory or (lambda: ApplicationContext(Database()))
        self.context: Optional[ApplicationContext] = None
        self.logger = logging.getLogger(__name__)

    async def setup_hook(self):
        """Start services before cogs so cogs can read them in __init__"""
        self.context = self._context_factory()
        await self.context.start()

        for extension in EXTENSIONS:
            try:
                await self.load_extension(extension)
                self.logger.info(f"Loaded cog: {extension}")
            except commands.ExtensionError as e:
                self.logger.error(f"Failed to load cog {extension}: {e}", exc_info=True)

        await self._sync_commands()

    async def _sync_commands(self):
        """Sync slash commands to the configured guilds, or globally when none are set"""
        guild_ids = Config.get_guild_ids()
        try:
            if not guild_ids:
                # Global sync can take up to an hour to propagate
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} command(s) globally")
                return

            for guild_id in guild_ids:
                guild = discord.Object(id=guild_id)
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
                self.logger.info(f"Synced {len(synced)} command(s) to guild {guild_id}")
        except discord.HTTPException as e:
            # Prefix commands keep working without synced slash commands
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)

    async def on_ready(self):
        self.logger.info(f'{self.user} connected to {len(self.guilds)} guild(s)')
        await self.change_presence(activity=discord.Game(name="RetroAchievements | /leaderboard"))

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Last-resort handler for slash command failures"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        if isinstance(error, app_commands.CommandOnCooldown):
            message = f"❌ Command is on cooldown. Try again in {error.retry_after:.1f} seconds."
        elif isinstance(error, app_commands.CheckFailure):
            message = "❌ You don't have permission to use this command."
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=error)
            message = "❌ An unexpected error occurred while processing your command."

        embed = discord.Embed(title=message, color=discord.Color.red())
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError):
        """Last-resort handler for owner prefix commands"""
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, commands.NotOwner):
            self.logger.info(f"Non-owner {ctx.author} tried '{ctx.command}'")
            await ctx.send("❌ This command is restricted to the bot owner.")
            return

        self.logger.error(f"Error in command {ctx.command}: {error}", exc_info=error)
        await ctx.send(embed=discord.Embed(
            title="❌ An error occurred",
            description="An unexpected error occurred while processing your command.",
            color=discord.Color.red()
        ))

    async def close(self):
        self.logger.info("Shutting down Select Start Bot...")
        if self.context:
            await self.context.close()
            self.context = None
        await super().close()

async def main():
    """Main entry point"""
    logger = setup_logger()
    quiet_library_loggers()
    Config.validate()

    bot = SelectStartBot()
    try:
        await bot.start(Config.DISCORD_TOKEN)
    except discord.LoginFailure as e:
        logger.error(f"Discord login failed: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()

def run():
    """Console script entry point"""
    asyncio.run(main())

if __name__ == "__main__":
    run()
