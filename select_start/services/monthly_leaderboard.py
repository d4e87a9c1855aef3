"""
Monthly challenge standings.

Builds participants from each registered user's progress on the month's
challenge game, fetches the active tiebreaker boards and ranks everyone with
LeaderboardRanker.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select

from select_start.constants import RankingConstants, UIConstants
from select_start.data_models.leaderboard import (
    ChallengeInfo, LeaderboardEntry, MonthlyStandings, Participant, TiebreakerBoard, TiebreakerContext
)
from select_start.database.models import ArcadeBoard, BoardType, Challenge, User
from select_start.services.achievements_client import AchievementsClient
from select_start.services.base import BaseService
from select_start.utils.exceptions import AchievementsAPIError
from select_start.utils.ranking import LeaderboardRanker

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC now, matching how dates are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def is_date_in_challenge_month(earned: datetime, now: datetime) -> bool:
    """True for the current month and the last day of the previous month."""
    start, end = month_bounds(now)
    grace_start = start - timedelta(days=1)
    return grace_start <= earned < end


def parse_date_earned(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _iter_achievements(progress: Dict[str, Any]) -> Iterable[Tuple[str, Dict[str, Any]]]:
    achievements = progress.get('Achievements') or progress.get('achievements') or {}
    if isinstance(achievements, dict):
        for achievement_id, data in achievements.items():
            if isinstance(data, dict):
                yield str(data.get('ID', achievement_id)), data
    elif isinstance(achievements, list):
        for data in achievements:
            if isinstance(data, dict) and data.get('ID') is not None:
                yield str(data['ID']), data


def earned_this_month(progress: Dict[str, Any], now: datetime) -> List[str]:
    """Ids of achievements whose earn date falls in the challenge month."""
    earned = []
    for achievement_id, data in _iter_achievements(progress):
        date = parse_date_earned(data.get('DateEarned') or data.get('dateEarned'))
        if date is not None and is_date_in_challenge_month(date, now):
            earned.append(achievement_id)
    return earned


def calculate_award(earned: List[str], challenge: ChallengeInfo) -> Tuple[str, int]:
    """Award tier and points for the achievements earned this month."""
    if earned and challenge.total_achievements and len(earned) >= challenge.total_achievements:
        return UIConstants.MASTERY_EMOJI, RankingConstants.MASTERY_POINTS

    earned_set = set(earned)
    progression = challenge.progression_achievements
    wins = challenge.win_achievements
    earned_progression = [a for a in progression if a in earned_set]
    earned_wins = [a for a in wins if a in earned_set]

    has_all_progression = len(earned_progression) == len(progression)
    has_required_win = not wins or bool(earned_wins)
    has_earned_any = bool(earned_progression or earned_wins)

    if has_all_progression and has_required_win and has_earned_any:
        return UIConstants.BEATEN_EMOJI, RankingConstants.BEATEN_POINTS
    return UIConstants.PARTICIPATION_EMOJI, RankingConstants.PARTICIPATION_POINTS


class MonthlyLeaderboardService(BaseService):
    """Service for the monthly challenge leaderboard."""

    def __init__(
        self,
        session_factory,
        client: AchievementsClient,
        ranker: Optional[LeaderboardRanker] = None,
        tiebreaker_max_entries: int = 1000,
    ):
        super().__init__(session_factory)
        self.client = client
        self.ranker = ranker or LeaderboardRanker()
        self.tiebreaker_max_entries = tiebreaker_max_entries

    async def get_current_challenge(self, now: Optional[datetime] = None) -> Optional[ChallengeInfo]:
        """Challenge whose month contains ``now``."""
        start, end = month_bounds(now or utcnow())
        async with self.get_session(commit=False) as session:
            result = await session.execute(
                select(Challenge).where(Challenge.date >= start, Challenge.date < end)
            )
            challenge = result.scalars().first()

        if challenge is None:
            return None

        if not challenge.game_title:
            await self._backfill_game_title(challenge)

        return ChallengeInfo(
            game_id=challenge.game_id,
            month=challenge.date,
            total_achievements=challenge.total_achievements,
            game_title=challenge.game_title,
            progression_achievements=[str(a) for a in challenge.progression_achievements or []],
            win_achievements=[str(a) for a in challenge.win_achievements or []],
        )

    async def _backfill_game_title(self, challenge: Challenge) -> None:
        """Store the game title and icon from the provider on first use."""
        try:
            game = await self.client.get_game_info(challenge.game_id)
        except AchievementsAPIError as e:
            logger.warning(f"Could not fetch game info for {challenge.game_id}: {e}")
            return

        if not isinstance(game, dict):
            return

        challenge.game_title = game.get('Title') or game.get('GameTitle')
        challenge.game_icon_url = game.get('ImageIcon')
        async with self.get_session() as session:
            await session.merge(challenge)

    async def get_active_tiebreaker(self, now: Optional[datetime] = None) -> Optional[TiebreakerBoard]:
        now = now or utcnow()
        async with self.get_session(commit=False) as session:
            result = await session.execute(
                select(ArcadeBoard)
                .where(
                    ArcadeBoard.board_type == BoardType.TIEBREAKER.value,
                    ArcadeBoard.start_date <= now,
                    ArcadeBoard.end_date >= now,
                )
                .order_by(ArcadeBoard.start_date.desc())
            )
            board = result.scalars().first()

        if board is None:
            return None
        return TiebreakerBoard(
            leaderboard_id=board.leaderboard_id,
            game_title=board.game_title,
            breaker_leaderboard_id=board.breaker_leaderboard_id,
            breaker_game_title=board.breaker_game_title,
        )

    async def get_registered_usernames(self) -> Dict[str, Optional[str]]:
        """RetroAchievements username -> Discord id for active users."""
        async def _load_users():
            async with self.get_session(commit=False) as session:
                result = await session.execute(select(User).where(User.is_active == True))
                return {user.ra_username: user.discord_id for user in result.scalars().all()}

        return await self.execute_with_retry(_load_users)

    async def _build_participant(
        self,
        challenge: ChallengeInfo,
        username: str,
        discord_id: Optional[str],
        now: datetime,
    ) -> Optional[Participant]:
        try:
            progress = await self.client.get_user_game_progress(username, challenge.game_id)
        except AchievementsAPIError as e:
            logger.warning(f"Skipping {username}: could not fetch progress ({e})")
            return None

        if not isinstance(progress, dict):
            logger.warning(f"Skipping {username}: unexpected progress payload")
            return None

        earned = earned_this_month(progress, now)
        if not earned:
            return None

        award, points = calculate_award(earned, challenge)
        percentage = None
        if challenge.total_achievements:
            percentage = round(len(earned) / challenge.total_achievements * 100, 2)

        return Participant(
            username=username,
            achieved=len(earned),
            points=points,
            percentage=percentage,
            discord_id=discord_id,
            award=award,
        )

    async def build_participants(
        self,
        challenge: ChallengeInfo,
        usernames: Dict[str, Optional[str]],
        now: Optional[datetime] = None,
    ) -> List[Participant]:
        """Participants with at least one achievement earned this month."""
        now = now or utcnow()
        results = await asyncio.gather(*(
            self._build_participant(challenge, username, discord_id, now)
            for username, discord_id in usernames.items()
        ))
        return [participant for participant in results if participant is not None]

    async def get_tiebreaker_entries(
        self,
        board: Optional[TiebreakerBoard],
    ) -> Tuple[List[LeaderboardEntry], List[LeaderboardEntry]]:
        """Entries for the tiebreaker board and its breaker board, empty on failure."""
        if board is None:
            return [], []

        entries: List[LeaderboardEntry] = []
        breaker_entries: List[LeaderboardEntry] = []
        try:
            entries = await self.client.get_all_leaderboard_entries(board.leaderboard_id, self.tiebreaker_max_entries)
            if board.has_breaker:
                breaker_entries = await self.client.get_all_leaderboard_entries(
                    board.breaker_leaderboard_id, self.tiebreaker_max_entries
                )
        except AchievementsAPIError as e:
            logger.error(f"Error fetching tiebreaker leaderboard {board.leaderboard_id}: {e}")

        return entries, breaker_entries

    async def generate_standings(self, now: Optional[datetime] = None) -> MonthlyStandings:
        """Current month's ranked standings."""
        now = now or utcnow()
        challenge = await self.get_current_challenge(now)
        if challenge is None:
            return MonthlyStandings(challenge=None, ranked=[])

        usernames = await self.get_registered_usernames()
        participants = await self.build_participants(challenge, usernames, now)

        board = await self.get_active_tiebreaker(now)
        entries, breaker_entries = await self.get_tiebreaker_entries(board)
        context = TiebreakerContext(
            game_title=board.game_title if board else None,
            podium_window=self.ranker.podium_window,
            breaker_entries=breaker_entries,
            breaker_game_title=board.breaker_game_title if board else None,
        )

        ranked = self.ranker.assign_ranks(participants, entries, context, challenge.total_achievements)
        logger.info(f"Generated monthly standings: {len(ranked)} participants")
        return MonthlyStandings(challenge=challenge, ranked=ranked, tiebreaker=board,
                                podium_window=self.ranker.podium_window)
