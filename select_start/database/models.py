from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from enum import Enum

Base = declarative_base()

class BoardType(Enum):
    TIEBREAKER = "tiebreaker"
    ARCADE = "arcade"
    RACING = "racing"

class ChallengeType(Enum):
    MONTHLY = "monthly"
    SHADOW = "shadow"
    COMMUNITY = "community"

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    ra_username = Column(String(100), nullable=False, unique=True)
    discord_id = Column(String(32), nullable=True, unique=True)
    is_active = Column(Boolean, default=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<User(ra_username='{self.ra_username}', discord_id={self.discord_id})>"

class Challenge(Base):
    """Monthly challenge game. One row per calendar month."""
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True)
    date = Column(DateTime, nullable=False, unique=True)  # First day of the month
    game_id = Column(Integer, nullable=False)
    game_title = Column(String(200), nullable=True)
    game_icon_url = Column(String(500), nullable=True)
    total_achievements = Column(Integer, nullable=False, default=0)

    # Achievement id lists used to decide the beaten award
    progression_achievements = Column(JSON, default=list)
    win_achievements = Column(JSON, default=list)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('total_achievements >= 0', name='ck_challenge_total_nonnegative'),
    )

    def __repr__(self):
        return f"<Challenge(date={self.date}, game_id={self.game_id})>"

class ArcadeBoard(Base):
    """RetroAchievements leaderboard tracked by the community."""
    __tablename__ = 'arcade_boards'

    id = Column(Integer, primary_key=True)
    board_type = Column(String(20), nullable=False, default=BoardType.TIEBREAKER.value, index=True)
    leaderboard_id = Column(Integer, nullable=False)
    game_id = Column(Integer, nullable=True)
    game_title = Column(String(200), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # Optional second board used when the tiebreaker itself is tied
    breaker_leaderboard_id = Column(Integer, nullable=True)
    breaker_game_title = Column(String(200), nullable=True)

    created_at = Column(DateTime, default=func.now())

    def has_breaker(self) -> bool:
        return self.breaker_leaderboard_id is not None

    def __repr__(self):
        return f"<ArcadeBoard(type='{self.board_type}', leaderboard_id={self.leaderboard_id})>"

class GachaItem(Base):
    __tablename__ = 'gacha_items'

    id = Column(Integer, primary_key=True)
    item_id = Column(String(100), nullable=False, unique=True)
    item_name = Column(String(200), nullable=False)
    rarity = Column(String(20), nullable=False, default='common')
    emoji_id = Column(String(32), nullable=True)
    emoji_name = Column(String(100), nullable=True)
    is_animated = Column(Boolean, default=False)

    def __repr__(self):
        return f"<GachaItem(item_id='{self.item_id}', rarity='{self.rarity}')>"

class TrophyEmoji(Base):
    __tablename__ = 'trophy_emojis'

    id = Column(Integer, primary_key=True)
    challenge_type = Column(String(20), nullable=False)
    month_key = Column(String(7), nullable=False)  # YYYY-MM
    emoji_id = Column(String(32), nullable=False)
    emoji_name = Column(String(100), nullable=False)
    is_animated = Column(Boolean, default=False)

    __table_args__ = (UniqueConstraint('challenge_type', 'month_key'),)

    def __repr__(self):
        return f"<TrophyEmoji(type='{self.challenge_type}', month='{self.month_key}')>"
