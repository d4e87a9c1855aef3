import discord
from discord import app_commands
from discord.ext import commands
from typing import List
from sqlalchemy.exc import SQLAlchemyError

from select_start.constants import RankingConstants, UIConstants
from select_start.data_models.leaderboard import MonthlyStandings, RankedParticipant
from select_start.utils.error_embeds import ErrorEmbeds
from select_start.utils.exceptions import AchievementsAPIError
import logging

logger = logging.getLogger(__name__)


def format_rank(rank: int) -> str:
    return UIConstants.RANK_EMOJIS.get(rank, f"#{rank}")


def format_participant_line(participant: RankedParticipant,
                            podium_window: int = RankingConstants.PODIUM_WINDOW) -> str:
    line = (
        f"{format_rank(participant.display_rank)} **{participant.username}** "
        f"{participant.award or ''} {participant.achieved} achievements"
    )
    if participant.percentage is not None:
        line += f" ({participant.percentage:.2f}%)"
    if participant.display_rank <= podium_window and participant.tiebreaker_score:
        line += f"\n   ⚔️ Tiebreaker: {participant.tiebreaker_score} (#{participant.tiebreaker_rank})"
        if participant.tiebreaker_breaker_score:
            line += f"\n   🗡️ Breaker: {participant.tiebreaker_breaker_score} (#{participant.tiebreaker_breaker_rank})"
    return line


def build_standings_embed(standings: MonthlyStandings) -> discord.Embed:
    """Render monthly standings into a single embed."""
    challenge = standings.challenge
    title = challenge.game_title or f"Game {challenge.game_id}"
    embed = discord.Embed(
        title=f"🏆 Monthly Challenge: {title}",
        description=f"{challenge.month.strftime('%B %Y')} standings",
        color=UIConstants.GOLD_RANK_COLOR if standings.ranked else UIConstants.DEFAULT_EMBED_COLOR
    )

    if standings.tiebreaker:
        embed.add_field(
            name="⚔️ Active Tiebreaker",
            value=standings.tiebreaker.game_title,
            inline=False
        )

    rows: List[RankedParticipant] = standings.ranked[:UIConstants.MAX_LEADERBOARD_ROWS]
    if not rows:
        embed.add_field(
            name="No Participants",
            value="No one has earned achievements in this challenge this month yet!",
            inline=False
        )
        return embed

    # Description allows far more text than a field
    embed.description += "\n\n" + "\n".join(format_participant_line(p, standings.podium_window) for p in rows)
    if len(standings.ranked) > len(rows):
        embed.set_footer(text=f"Showing top {len(rows)} of {len(standings.ranked)} participants")
    return embed


class LeaderboardCog(commands.Cog):
    """Monthly challenge leaderboard commands"""

    def __init__(self, bot):
        self.bot = bot
        self.monthly_leaderboard = bot.context.monthly_leaderboard

    @app_commands.command(name="leaderboard", description="View the current monthly challenge standings")
    async def leaderboard(self, interaction: discord.Interaction):
        """Display the monthly challenge leaderboard."""
        await interaction.response.defer()

        try:
            standings = await self.monthly_leaderboard.generate_standings()
        except AchievementsAPIError as e:
            logger.warning(f"Provider error in leaderboard command: {e}")
            await interaction.followup.send(embed=ErrorEmbeds.provider_error(e))
            return
        except SQLAlchemyError as e:
            logger.error(f"Database error in leaderboard command: {e}", exc_info=True)
            await interaction.followup.send(embed=ErrorEmbeds.database_error())
            return

        if standings.challenge is None:
            await interaction.followup.send(embed=ErrorEmbeds.no_active_challenge())
            return

        await interaction.followup.send(embed=build_standings_embed(standings))


async def setup(bot):
    await bot.add_cog(LeaderboardCog(bot))
