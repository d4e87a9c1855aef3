"""
Leaderboard data models for the monthly challenge standings.

Provides immutable data transfer objects for provider leaderboard rows,
ranking input and ranking output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from select_start.constants import RankingConstants


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single normalized row from a RetroAchievements leaderboard."""
    username: str
    api_rank: int
    score: str
    raw_value: float = 0.0
    date_submitted: Optional[str] = None


@dataclass(frozen=True)
class Participant:
    """A challenge participant before ranking."""
    username: str
    achieved: int
    points: int = 0
    percentage: Optional[float] = None
    discord_id: Optional[str] = None
    award: Optional[str] = None


@dataclass(frozen=True)
class RankedParticipant:
    """A participant with its final display rank and tiebreaker details."""
    username: str
    achieved: int
    points: int
    percentage: Optional[float]
    display_rank: int
    original_index: int
    tiebreaker_score: Optional[str] = None
    tiebreaker_rank: Optional[int] = None
    tiebreaker_breaker_score: Optional[str] = None
    tiebreaker_breaker_rank: Optional[int] = None
    discord_id: Optional[str] = None
    award: Optional[str] = None

    @property
    def has_tiebreaker(self) -> bool:
        return self.tiebreaker_rank is not None


@dataclass(frozen=True)
class TiebreakerContext:
    """Which tiebreaker board applies and to which rank window."""
    game_title: Optional[str] = None
    podium_window: int = RankingConstants.PODIUM_WINDOW
    breaker_entries: List[LeaderboardEntry] = field(default_factory=list)
    breaker_game_title: Optional[str] = None


@dataclass(frozen=True)
class ChallengeInfo:
    """The monthly challenge a leaderboard is computed for."""
    game_id: int
    month: datetime
    total_achievements: int
    game_title: Optional[str] = None
    progression_achievements: List[str] = field(default_factory=list)
    win_achievements: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TiebreakerBoard:
    """An active tiebreaker leaderboard, optionally with its own breaker board."""
    leaderboard_id: int
    game_title: str
    breaker_leaderboard_id: Optional[int] = None
    breaker_game_title: Optional[str] = None

    @property
    def has_breaker(self) -> bool:
        return self.breaker_leaderboard_id is not None


@dataclass(frozen=True)
class MonthlyStandings:
    """Ranked monthly standings ready for rendering."""
    challenge: Optional[ChallengeInfo]
    ranked: List[RankedParticipant]
    tiebreaker: Optional[TiebreakerBoard] = None
    podium_window: int = RankingConstants.PODIUM_WINDOW
