"""
Emoji data models for the emoji cache.

Records are what the persistent store hands back at refresh time; the
``*Info`` objects are what lookups return to callers.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GachaEmojiRecord:
    """Persisted emoji configuration for one gacha item."""
    item_id: str
    emoji_id: Optional[str]
    emoji_name: Optional[str]
    is_animated: bool = False
    item_name: Optional[str] = None
    rarity: Optional[str] = None


@dataclass(frozen=True)
class TrophyEmojiRecord:
    """Persisted emoji configuration for one challenge trophy."""
    challenge_type: str
    month_key: str
    emoji_id: str
    emoji_name: str
    is_animated: bool = False


@dataclass(frozen=True)
class GachaEmojiInfo:
    """Display identifiers for a gacha item."""
    emoji_id: Optional[str]
    emoji_name: str
    is_animated: bool
    item_name: str
    item_id: str
    rarity: str


@dataclass(frozen=True)
class TrophyEmojiInfo:
    """Display identifiers for a challenge trophy."""
    emoji_id: Optional[str]
    emoji_name: str
    is_animated: bool
    challenge_type: Optional[str]
    month_key: Optional[str]


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of rebuilding one emoji cache domain."""
    success: bool
    count: int = 0
    error: Optional[str] = None
    skipped: bool = False
