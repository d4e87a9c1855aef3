"""
Async SQLite/SQLAlchemy access for registered users, monthly challenges,
tiebreaker boards and the emoji configuration the emoji cache reads.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from select_start.config import Config
from select_start.data_models.emoji import GachaEmojiRecord, TrophyEmojiRecord
from select_start.database.models import (
    Base, User, Challenge, ArcadeBoard, BoardType, GachaItem, TrophyEmoji
)

logger = logging.getLogger(__name__)


def to_async_url(url: str) -> str:
    """Point plain SQLite URLs at the aiosqlite driver."""
    if url.startswith('sqlite:///'):
        return 'sqlite+aiosqlite:///' + url[len('sqlite:///'):]
    return url


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or Config.DATABASE_URL
        self.engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    async def initialize(self):
        """Open the engine and create any missing tables"""
        url = to_async_url(self.database_url)
        logger.info(f"Opening database {url}")

        self.engine = create_async_engine(url, echo=Config.DEBUG)
        self._sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @property
    def session_factory(self) -> async_sessionmaker:
        """Factory handed to BaseService subclasses"""
        if self._sessions is None:
            raise RuntimeError("Database.initialize() has not been awaited")
        return self._sessions

    @asynccontextmanager
    async def get_session(self, commit: bool = False) -> AsyncIterator[AsyncSession]:
        """Session scope; rolls back on error, commits on exit only when ``commit`` is set"""
        session = self.session_factory()
        try:
            yield session
            if commit:
                await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    def transaction(self):
        """Write scope: everything inside commits together or not at all"""
        return self.get_session(commit=True)

    async def close(self):
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._sessions = None
            logger.info("Database closed")

    async def _save(self, row):
        async with self.transaction() as session:
            session.add(row)
            await session.flush()
            await session.refresh(row)
        return row

    # Users
    async def get_user_by_ra_username(self, ra_username: str) -> Optional[User]:
        """Case-insensitive lookup by RetroAchievements username"""
        async with self.get_session() as session:
            result = await session.execute(select(User).where(User.ra_username.ilike(ra_username)))
            return result.scalar_one_or_none()

    async def create_user(self, ra_username: str, discord_id: Optional[str] = None) -> User:
        user = await self._save(User(ra_username=ra_username, discord_id=discord_id))
        logger.info(f"Registered user {ra_username}")
        return user

    async def get_active_users(self) -> List[User]:
        async with self.get_session() as session:
            result = await session.execute(
                select(User).where(User.is_active.is_(True)).order_by(User.ra_username)
            )
            return list(result.scalars())

    # Challenges and boards
    async def create_challenge(
        self,
        month: datetime,
        game_id: int,
        total_achievements: int,
        game_title: Optional[str] = None,
        progression_achievements: Optional[List[str]] = None,
        win_achievements: Optional[List[str]] = None,
    ) -> Challenge:
        """Create the challenge for the month containing ``month``"""
        return await self._save(Challenge(
            date=datetime(month.year, month.month, 1),
            game_id=game_id,
            game_title=game_title,
            total_achievements=total_achievements,
            progression_achievements=[str(a) for a in progression_achievements or []],
            win_achievements=[str(a) for a in win_achievements or []],
        ))

    async def create_tiebreaker(
        self,
        leaderboard_id: int,
        game_title: str,
        start_date: datetime,
        end_date: datetime,
        breaker_leaderboard_id: Optional[int] = None,
        breaker_game_title: Optional[str] = None,
    ) -> ArcadeBoard:
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        return await self._save(ArcadeBoard(
            board_type=BoardType.TIEBREAKER.value,
            leaderboard_id=leaderboard_id,
            game_title=game_title,
            start_date=start_date,
            end_date=end_date,
            breaker_leaderboard_id=breaker_leaderboard_id,
            breaker_game_title=breaker_game_title,
        ))

    # Emoji configuration
    async def upsert_gacha_item(
        self,
        item_id: str,
        item_name: str,
        rarity: str = 'common',
        emoji_id: Optional[str] = None,
        emoji_name: Optional[str] = None,
        is_animated: bool = False,
    ) -> GachaItem:
        async with self.transaction() as session:
            item = (await session.execute(
                select(GachaItem).where(GachaItem.item_id == item_id)
            )).scalar_one_or_none()
            if item is None:
                item = GachaItem(item_id=item_id)
                session.add(item)
            item.item_name = item_name
            item.rarity = rarity
            item.emoji_id = emoji_id
            item.emoji_name = emoji_name
            item.is_animated = is_animated
        return item

    async def set_trophy_emoji(
        self,
        challenge_type: str,
        month_key: str,
        emoji_id: str,
        emoji_name: str,
        is_animated: bool = False,
    ) -> TrophyEmoji:
        async with self.transaction() as session:
            trophy = (await session.execute(
                select(TrophyEmoji).where(
                    TrophyEmoji.challenge_type == challenge_type,
                    TrophyEmoji.month_key == month_key,
                )
            )).scalar_one_or_none()
            if trophy is None:
                trophy = TrophyEmoji(challenge_type=challenge_type, month_key=month_key)
                session.add(trophy)
            trophy.emoji_id = emoji_id
            trophy.emoji_name = emoji_name
            trophy.is_animated = is_animated
        return trophy

    async def fetch_gacha_emojis(self) -> List[GachaEmojiRecord]:
        async with self.get_session() as session:
            items = (await session.execute(select(GachaItem).order_by(GachaItem.id))).scalars()
            return [
                GachaEmojiRecord(
                    item_id=item.item_id,
                    emoji_id=item.emoji_id,
                    emoji_name=item.emoji_name,
                    is_animated=bool(item.is_animated),
                    item_name=item.item_name,
                    rarity=item.rarity,
                )
                for item in items
            ]

    async def fetch_trophy_emojis(self) -> List[TrophyEmojiRecord]:
        async with self.get_session() as session:
            trophies = (await session.execute(select(TrophyEmoji).order_by(TrophyEmoji.id))).scalars()
            return [
                TrophyEmojiRecord(
                    challenge_type=trophy.challenge_type,
                    month_key=trophy.month_key,
                    emoji_id=trophy.emoji_id,
                    emoji_name=trophy.emoji_name,
                    is_animated=bool(trophy.is_animated),
                )
                for trophy in trophies
            ]
