"""
Multi-tier emoji cache with stale-while-revalidate lookups.

Gacha item emojis and monthly trophy emojis are loaded from the database in
bulk and served from memory. Lookups never wait on the database: a miss or a
stale entry returns a placeholder and schedules a background refresh of that
domain. Formatted emoji markup is memoized separately.
"""

import asyncio
import time
import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from select_start.constants import EmojiConstants
from select_start.data_models.emoji import (
    GachaEmojiInfo, GachaEmojiRecord, RefreshResult, TrophyEmojiInfo, TrophyEmojiRecord
)

logger = logging.getLogger(__name__)

GACHA = 'gacha'
TROPHY = 'trophy'


class RefreshState(Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass
class EmojiCacheConfig:
    """Tunable cache settings (seconds)."""
    gacha_ttl: float = EmojiConstants.GACHA_CACHE_TTL
    trophy_ttl: float = EmojiConstants.TROPHY_CACHE_TTL
    formatted_ttl: float = EmojiConstants.FORMATTED_CACHE_TTL
    max_cache_size: int = EmojiConstants.MAX_CACHE_SIZE
    background_refresh_threshold: float = EmojiConstants.BACKGROUND_REFRESH_THRESHOLD
    refresh_delay: float = EmojiConstants.REFRESH_DELAY
    query_timeout: float = EmojiConstants.QUERY_TIMEOUT


class EmojiStore(Protocol):
    """Read-only source of persisted emoji configuration."""

    async def fetch_gacha_emojis(self) -> List[GachaEmojiRecord]:
        ...

    async def fetch_trophy_emojis(self) -> List[TrophyEmojiRecord]:
        ...


def _trim_oldest(cache: Dict[Any, Tuple[float, Any]], max_size: int) -> Dict[Any, Tuple[float, Any]]:
    """Keep the newest ``max_size`` entries by timestamp."""
    sorted_items = sorted(cache.items(), key=lambda x: x[1][0], reverse=True)
    return dict(sorted_items[:max_size])


class EmojiCacheService:
    """In-memory emoji lookups backed by an EmojiStore."""

    def __init__(
        self,
        store: EmojiStore,
        config: Optional[EmojiCacheConfig] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.config = config or EmojiCacheConfig()
        self._clock = clock
        self._sleep = sleep

        # Each map holds key -> (timestamp, value)
        self.gacha_emoji_cache: Dict[str, Tuple[float, GachaEmojiInfo]] = {}
        self.item_lookup_cache: Dict[str, Tuple[float, GachaEmojiInfo]] = {}
        self.trophy_emoji_cache: Dict[Tuple[str, str], Tuple[float, TrophyEmojiInfo]] = {}
        self.formatted_emoji_cache: Dict[str, Tuple[float, str]] = {}

        self.last_refresh: Dict[str, float] = {GACHA: 0.0, TROPHY: 0.0}
        self.refresh_state: Dict[str, RefreshState] = {GACHA: RefreshState.IDLE, TROPHY: RefreshState.IDLE}
        self._scheduled: set = set()
        self._background_tasks: set = set()
        self.initialization_complete = False

        self.stats: Dict[str, int] = {}
        self.reset_stats()

    # Lookups

    def _fresh(self, timestamp: float, ttl: float) -> bool:
        return self._clock() - timestamp <= ttl

    def _refresh_after_miss(self, domain: str, cached: Optional[tuple], ttl: float) -> None:
        """
        Schedule a reload for a stale entry, or for an unknown key unless the
        domain was loaded within its TTL (the key is simply not configured).
        """
        loaded_at = self.last_refresh[domain]
        if cached is None and loaded_at and self._fresh(loaded_at, ttl):
            return
        self.schedule_background_refresh(domain)

    @staticmethod
    def fallback_gacha_emoji(item_id: Optional[str] = None) -> GachaEmojiInfo:
        return GachaEmojiInfo(
            emoji_id=None,
            emoji_name=EmojiConstants.FALLBACK_GLYPH,
            is_animated=False,
            item_name='Unknown Item',
            item_id=str(item_id) if item_id else 'unknown',
            rarity='common',
        )

    @staticmethod
    def fallback_trophy_emoji(challenge_type: Any = None, month_key: Any = None) -> TrophyEmojiInfo:
        glyph = EmojiConstants.FALLBACK_GLYPH
        if isinstance(challenge_type, str):
            glyph = EmojiConstants.TROPHY_FALLBACKS.get(challenge_type, glyph)
        return TrophyEmojiInfo(
            emoji_id=None,
            emoji_name=glyph,
            is_animated=False,
            challenge_type=challenge_type if isinstance(challenge_type, str) else None,
            month_key=month_key if isinstance(month_key, str) else None,
        )

    def get_gacha_emoji(self, emoji_id: Any) -> GachaEmojiInfo:
        """Look up a gacha emoji by Discord emoji id."""
        if not emoji_id:
            self.stats['gacha_misses'] += 1
            return self.fallback_gacha_emoji()

        cached = self.gacha_emoji_cache.get(str(emoji_id))
        if cached and self._fresh(cached[0], self.config.gacha_ttl):
            self.stats['gacha_hits'] += 1
            return cached[1]

        self.stats['gacha_misses'] += 1
        self._refresh_after_miss(GACHA, cached, self.config.gacha_ttl)
        return self.fallback_gacha_emoji()

    def get_gacha_emoji_by_item_id(self, item_id: Any) -> GachaEmojiInfo:
        """Look up a gacha emoji by gacha item id."""
        if not item_id:
            self.stats['gacha_misses'] += 1
            return self.fallback_gacha_emoji()

        cached = self.item_lookup_cache.get(str(item_id))
        if cached and self._fresh(cached[0], self.config.gacha_ttl):
            self.stats['gacha_hits'] += 1
            return cached[1]

        self.stats['gacha_misses'] += 1
        self._refresh_after_miss(GACHA, cached, self.config.gacha_ttl)
        return self.fallback_gacha_emoji(item_id)

    def get_trophy_emoji(self, challenge_type: Any, month_key: Any) -> TrophyEmojiInfo:
        """Look up the trophy emoji for a challenge type and ``YYYY-MM`` month key."""
        if not challenge_type or not month_key:
            self.stats['trophy_misses'] += 1
            return self.fallback_trophy_emoji(challenge_type, month_key)

        cached = self.trophy_emoji_cache.get((str(challenge_type), str(month_key)))
        if cached and self._fresh(cached[0], self.config.trophy_ttl):
            self.stats['trophy_hits'] += 1
            return cached[1]

        self.stats['trophy_misses'] += 1
        self._refresh_after_miss(TROPHY, cached, self.config.trophy_ttl)
        return self.fallback_trophy_emoji(challenge_type, month_key)

    def format_emoji(self, emoji_id: Optional[str], emoji_name: Optional[str], animated: bool = False) -> str:
        """Render Discord emoji markup, memoized."""
        format_key = f"{emoji_id or 'no-id'}_{emoji_name or 'no-name'}_{bool(animated)}"
        cached = self.formatted_emoji_cache.get(format_key)
        if cached and self._fresh(cached[0], self.config.formatted_ttl):
            self.stats['formatted_hits'] += 1
            return cached[1]

        self.stats['formatted_misses'] += 1
        if emoji_id and emoji_name:
            prefix = 'a' if animated else ''
            formatted = f"<{prefix}:{emoji_name}:{emoji_id}>"
        elif emoji_name:
            formatted = str(emoji_name)
        else:
            formatted = EmojiConstants.FALLBACK_GLYPH

        self.formatted_emoji_cache[format_key] = (self._clock(), formatted)
        if len(self.formatted_emoji_cache) > self.config.max_cache_size:
            self.formatted_emoji_cache = _trim_oldest(self.formatted_emoji_cache, self.config.max_cache_size)
        return formatted

    def format_gacha_emoji(self, emoji_id: Any) -> str:
        info = self.get_gacha_emoji(emoji_id)
        return self.format_emoji(info.emoji_id, info.emoji_name, info.is_animated)

    def format_trophy_emoji(self, challenge_type: Any, month_key: Any) -> str:
        info = self.get_trophy_emoji(challenge_type, month_key)
        return self.format_emoji(info.emoji_id, info.emoji_name, info.is_animated)

    # Refresh

    def schedule_background_refresh(self, domain: str) -> bool:
        """
        Schedule a detached refresh of one domain.

        Returns False when a refresh is already scheduled or running, or when
        there is no running event loop.
        """
        if domain in self._scheduled or self.refresh_state[domain] is RefreshState.REFRESHING:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, skipping {domain} emoji refresh")
            return False

        self._scheduled.add(domain)
        task = loop.create_task(self._background_refresh(domain))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return True

    async def _background_refresh(self, domain: str) -> None:
        try:
            # Small delay so a burst of misses triggers a single reload
            await self._sleep(self.config.refresh_delay)
            if domain == GACHA:
                await self.refresh_gacha_emojis()
            else:
                await self.refresh_trophy_emojis()
        finally:
            self._scheduled.discard(domain)

    async def _load(self, domain: str, fetch: Callable[[], Awaitable[list]]) -> Optional[list]:
        """Run one store query under the refresh guard and timeout."""
        self.refresh_state[domain] = RefreshState.REFRESHING
        try:
            return await asyncio.wait_for(fetch(), timeout=self.config.query_timeout)
        finally:
            self.refresh_state[domain] = RefreshState.IDLE

    async def refresh_gacha_emojis(self) -> RefreshResult:
        """Rebuild the gacha emoji and item lookup maps from the store."""
        if self.refresh_state[GACHA] is RefreshState.REFRESHING:
            return RefreshResult(success=True, skipped=True)

        try:
            records = await self._load(GACHA, self.store.fetch_gacha_emojis)
        except Exception as e:
            logger.error(f"Error refreshing gacha emoji cache: {e!r}")
            self.stats['error_count'] += 1
            return RefreshResult(success=False, error=str(e) or type(e).__name__)

        if not records:
            logger.warning("No gacha items found for emoji cache")
            return RefreshResult(success=False, error='No items found')

        now = self._clock()
        gacha_cache = {}
        item_cache = {}
        for record in records:
            info = GachaEmojiInfo(
                emoji_id=str(record.emoji_id) if record.emoji_id else None,
                emoji_name=record.emoji_name or EmojiConstants.FALLBACK_GLYPH,
                is_animated=bool(record.is_animated),
                item_name=record.item_name or 'Unknown Item',
                item_id=str(record.item_id),
                rarity=record.rarity or 'common',
            )
            if record.emoji_id and record.emoji_name:
                gacha_cache[str(record.emoji_id)] = (now, info)
            item_cache[str(record.item_id)] = (now, info)

        self.gacha_emoji_cache = gacha_cache
        self.item_lookup_cache = item_cache
        self.last_refresh[GACHA] = now
        self.stats['refresh_count'] += 1

        logger.info(f"Gacha emoji cache refreshed: {len(gacha_cache)} entries cached")
        return RefreshResult(success=True, count=len(gacha_cache))

    async def refresh_trophy_emojis(self) -> RefreshResult:
        """Rebuild the trophy emoji map from the store."""
        if self.refresh_state[TROPHY] is RefreshState.REFRESHING:
            return RefreshResult(success=True, skipped=True)

        try:
            records = await self._load(TROPHY, self.store.fetch_trophy_emojis)
        except Exception as e:
            logger.error(f"Error refreshing trophy emoji cache: {e!r}")
            self.stats['error_count'] += 1
            return RefreshResult(success=False, error=str(e) or type(e).__name__)

        if not records:
            logger.warning("No trophy emojis found for cache")
            return RefreshResult(success=False, error='No trophies found')

        now = self._clock()
        trophy_cache = {}
        for record in records:
            trophy_cache[(record.challenge_type, record.month_key)] = (now, TrophyEmojiInfo(
                emoji_id=str(record.emoji_id),
                emoji_name=record.emoji_name,
                is_animated=bool(record.is_animated),
                challenge_type=record.challenge_type,
                month_key=record.month_key,
            ))

        self.trophy_emoji_cache = trophy_cache
        self.last_refresh[TROPHY] = now
        self.stats['refresh_count'] += 1

        logger.info(f"Trophy emoji cache refreshed: {len(trophy_cache)} entries cached")
        return RefreshResult(success=True, count=len(trophy_cache))

    async def refresh_all(self) -> Dict[str, RefreshResult]:
        """Reload both domains and drop memoized markup."""
        logger.info("Manual refresh of all emoji caches")
        gacha_result, trophy_result = await asyncio.gather(
            self.refresh_gacha_emojis(),
            self.refresh_trophy_emojis(),
        )
        self.formatted_emoji_cache.clear()
        return {GACHA: gacha_result, TROPHY: trophy_result}

    def refresh_if_due(self) -> List[str]:
        """Schedule refreshes for domains nearing their TTL."""
        now = self._clock()
        ttls = {GACHA: self.config.gacha_ttl, TROPHY: self.config.trophy_ttl}
        scheduled = []
        for domain, ttl in ttls.items():
            if now - self.last_refresh[domain] > ttl * self.config.background_refresh_threshold:
                if self.schedule_background_refresh(domain):
                    scheduled.append(domain)
        return scheduled

    # Housekeeping

    def cleanup_expired_entries(self) -> int:
        """Evict formatted markup older than its TTL."""
        now = self._clock()
        expired = [
            key for key, (timestamp, _) in self.formatted_emoji_cache.items()
            if now - timestamp > self.config.formatted_ttl
        ]
        for key in expired:
            del self.formatted_emoji_cache[key]

        if expired:
            logger.info(f"Cleaned {len(expired)} expired emoji cache entries")
        return len(expired)

    def enforce_cache_size_limits(self) -> Dict[str, int]:
        """Trim every map to ``max_cache_size``, oldest entries first."""
        max_size = self.config.max_cache_size
        removed = {}
        for name in ('gacha_emoji_cache', 'item_lookup_cache', 'trophy_emoji_cache', 'formatted_emoji_cache'):
            cache = getattr(self, name)
            if len(cache) > max_size:
                removed[name] = len(cache) - max_size
                setattr(self, name, _trim_oldest(cache, max_size))
                logger.info(f"Enforced size limit on {name}: removed {removed[name]} entries")
        return removed

    async def initialize(self) -> Dict[str, RefreshResult]:
        """Load both domains once at startup."""
        results = await self.refresh_all()
        self.initialization_complete = True
        logger.info(
            f"Emoji cache initialized: {len(self.gacha_emoji_cache)} gacha, "
            f"{len(self.trophy_emoji_cache)} trophy"
        )
        return results

    async def shutdown(self):
        """Cancel pending background refreshes."""
        if self._background_tasks:
            logger.info(f"Cancelling {len(self._background_tasks)} emoji refresh tasks...")
            for task in self._background_tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
            self._background_tasks.clear()
        self._scheduled.clear()

    # Stats and configuration

    def _hit_rate(self, prefix: str) -> float:
        hits = self.stats[f'{prefix}_hits']
        total = hits + self.stats[f'{prefix}_misses']
        return hits / total * 100 if total else 0.0

    def get_cache_stats(self) -> Dict[str, Dict[str, Any]]:
        now = self._clock()
        return {
            GACHA: {
                'size': len(self.gacha_emoji_cache),
                'last_refresh': self.last_refresh[GACHA],
                'age': now - self.last_refresh[GACHA],
                'needs_refresh': now - self.last_refresh[GACHA] > self.config.gacha_ttl,
                'hits': self.stats['gacha_hits'],
                'misses': self.stats['gacha_misses'],
                'hit_rate': self._hit_rate(GACHA),
            },
            TROPHY: {
                'size': len(self.trophy_emoji_cache),
                'last_refresh': self.last_refresh[TROPHY],
                'age': now - self.last_refresh[TROPHY],
                'needs_refresh': now - self.last_refresh[TROPHY] > self.config.trophy_ttl,
                'hits': self.stats['trophy_hits'],
                'misses': self.stats['trophy_misses'],
                'hit_rate': self._hit_rate(TROPHY),
            },
            'formatted': {
                'size': len(self.formatted_emoji_cache),
                'hits': self.stats['formatted_hits'],
                'misses': self.stats['formatted_misses'],
                'hit_rate': self._hit_rate('formatted'),
            },
            'lookup': {
                'size': len(self.item_lookup_cache),
            },
            'overall': {
                'refresh_count': self.stats['refresh_count'],
                'error_count': self.stats['error_count'],
                'refreshing': [d for d, s in self.refresh_state.items() if s is RefreshState.REFRESHING],
                'pending_tasks': len(self._background_tasks),
                'initialization_complete': self.initialization_complete,
            },
        }

    def reset_stats(self) -> None:
        self.stats = {
            'gacha_hits': 0,
            'gacha_misses': 0,
            'trophy_hits': 0,
            'trophy_misses': 0,
            'formatted_hits': 0,
            'formatted_misses': 0,
            'refresh_count': 0,
            'error_count': 0,
        }

    def update_config(self, **changes) -> EmojiCacheConfig:
        """Update cache settings in place.

        Raises:
            ValueError: For unknown setting names
        """
        known = {f.name for f in fields(EmojiCacheConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown emoji cache settings: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(self.config, name, value)
        logger.info(f"Emoji cache configuration updated: {changes}")
        return self.config
