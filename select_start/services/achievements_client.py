"""
RetroAchievements web API client.

Every accessor builds a deterministic cache key, answers fresh hits from the
ResponseCache and sends misses through the shared RateLimiter. Provider
failures are raised as typed AchievementsAPIError subclasses and never cached.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp

from select_start.config import Config
from select_start.constants import CacheConstants
from select_start.data_models.leaderboard import LeaderboardEntry
from select_start.services.rate_limiter import RateLimiter
from select_start.services.response_cache import ResponseCache
from select_start.utils.exceptions import (
    AchievementsAPIError, MalformedResponseError, ProviderNotFoundError,
    ProviderUnavailableError, RateLimitedError
)
from select_start.utils.normalization import normalize_leaderboard_page

logger = logging.getLogger(__name__)


class AchievementsClient:
    """Cached, rate-limited access to the RetroAchievements API."""

    def __init__(
        self,
        username: str,
        api_key: str,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[ResponseCache] = None,
        base_url: str = 'https://retroachievements.org/API/',
        timeout: float = 10.0,
        user_agent: str = 'Select-Start-Bot/1.0',
        ttls: Optional[Dict[str, float]] = None,
        coalesce_requests: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.username = username
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.user_agent = user_agent
        self.coalesce_requests = coalesce_requests

        self.ttls = {
            'game_info': CacheConstants.GAME_INFO_TTL,
            'user_progress': CacheConstants.USER_PROGRESS_TTL,
            'leaderboard': CacheConstants.LEADERBOARD_TTL,
            'user_profile': CacheConstants.USER_PROGRESS_TTL,
            'user_awards': CacheConstants.USER_AWARDS_TTL,
            'recent_achievements': CacheConstants.RECENT_ACHIEVEMENTS_TTL,
        }
        if ttls:
            self.ttls.update(ttls)

        self.rate_limiter = rate_limiter or RateLimiter()
        # Per-accessor TTLs are applied as max_age, so the cache TTL must cover the longest one
        self.cache = cache if cache is not None else ResponseCache(ttl=max(self.ttls.values()))

        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._in_flight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_config(cls, rate_limiter: Optional[RateLimiter] = None, **kwargs) -> 'AchievementsClient':
        """Build a client from the environment-backed Config."""
        ttls = {
            'game_info': Config.CACHE_TTL_GAME_INFO,
            'user_progress': Config.CACHE_TTL_USER_PROGRESS,
            'leaderboard': Config.CACHE_TTL_LEADERBOARD,
            'user_profile': Config.CACHE_TTL_DEFAULT,
        }
        return cls(
            username=Config.RA_USERNAME,
            api_key=Config.RA_API_KEY,
            rate_limiter=rate_limiter,
            base_url=Config.RA_API_BASE_URL,
            timeout=Config.API_REQUEST_TIMEOUT,
            user_agent=Config.RA_USER_AGENT,
            ttls=ttls,
            **kwargs
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={'User-Agent': self.user_agent})
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, endpoint: str, params: Dict[str, Any]) -> Any:
        """Perform one HTTP GET and decode the JSON body."""
        session = await self._get_session()
        query = {'z': self.username, 'y': self.api_key}
        query.update({key: str(value) for key, value in params.items()})

        try:
            async with session.get(self.base_url + endpoint, params=query, timeout=self._timeout) as response:
                if response.status == 429:
                    raise RateLimitedError(endpoint)
                if response.status == 404:
                    raise ProviderNotFoundError(endpoint)
                if response.status >= 400:
                    raise ProviderUnavailableError(endpoint, f"HTTP {response.status}", status=response.status)

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise MalformedResponseError(endpoint, str(e)) from e
        except AchievementsAPIError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderUnavailableError(endpoint, "request timed out") from e
        except aiohttp.ClientError as e:
            raise ProviderUnavailableError(endpoint, str(e)) from e

    async def _fetch(
        self,
        cache_key: str,
        ttl: float,
        endpoint: str,
        params: Dict[str, Any],
        transform: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Return a cached value or load it through the rate limiter."""
        cached = self.cache.get(cache_key, max_age=ttl)
        if cached is not None:
            logger.debug(f"Cache hit for {cache_key}")
            return cached

        if not self.coalesce_requests:
            return await self._load(cache_key, endpoint, params, transform)

        pending = self._in_flight.get(cache_key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(cache_key, endpoint, params, transform))
            self._in_flight[cache_key] = pending
            pending.add_done_callback(lambda _: self._in_flight.pop(cache_key, None))
        else:
            logger.debug(f"Joining in-flight request for {cache_key}")
        return await asyncio.shield(pending)

    async def _load(
        self,
        cache_key: str,
        endpoint: str,
        params: Dict[str, Any],
        transform: Optional[Callable[[Any], Any]],
    ) -> Any:
        data = await self.rate_limiter.enqueue(lambda: self._request(endpoint, params))
        if transform is not None:
            data = transform(data)
        self.cache.set(cache_key, data)
        return data

    async def get_game_info(self, game_id: int) -> Dict[str, Any]:
        """Game metadata (title, console, icon)."""
        return await self._fetch(
            f"game_info_{game_id}", self.ttls['game_info'],
            'API_GetGame.php', {'i': game_id}
        )

    async def get_user_game_progress(self, username: str, game_id: int) -> Dict[str, Any]:
        """A user's achievements for one game, with DateEarned on earned ones."""
        return await self._fetch(
            f"progress_{username.lower()}_{game_id}", self.ttls['user_progress'],
            'API_GetGameInfoAndUserProgress.php', {'u': username, 'g': game_id, 'a': 1}
        )

    async def get_leaderboard_entries(
        self,
        leaderboard_id: int,
        offset: int = 0,
        count: int = 100,
    ) -> List[LeaderboardEntry]:
        """
        One page of a leaderboard, normalized.

        ``count`` is clamped to the provider's page cap. Each page is cached
        and rate limited on its own.
        """
        entries, _ = await self._get_leaderboard_page(leaderboard_id, offset, count)
        return entries

    async def _get_leaderboard_page(
        self,
        leaderboard_id: int,
        offset: int,
        count: int,
    ) -> Tuple[List[LeaderboardEntry], int]:
        """Normalized entries plus the number of rows the provider sent."""
        offset = max(0, offset)
        count = max(1, min(count, CacheConstants.LEADERBOARD_PAGE_SIZE))
        endpoint = 'API_GetLeaderboardEntries.php'
        return await self._fetch(
            f"leaderboard_{leaderboard_id}_{offset}_{count}", self.ttls['leaderboard'],
            endpoint, {'i': leaderboard_id, 'o': offset, 'c': count},
            transform=lambda payload: normalize_leaderboard_page(payload, endpoint)
        )

    async def get_all_leaderboard_entries(self, leaderboard_id: int, max_entries: int = 1000) -> List[LeaderboardEntry]:
        """Page through a leaderboard, de-duplicating users and sorting by rank."""
        page_size = CacheConstants.LEADERBOARD_PAGE_SIZE
        collected: List[LeaderboardEntry] = []
        offset = 0

        while offset < max_entries:
            count = min(page_size, max_entries - offset)
            page, row_count = await self._get_leaderboard_page(leaderboard_id, offset, count)
            collected.extend(page)
            # Rows dropped by normalization still count toward a full page
            if row_count < count:
                break
            offset += count

        seen = set()
        unique = []
        for entry in collected:
            key = entry.username.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(entry)

        unique.sort(key=lambda entry: entry.api_rank)
        logger.debug(f"Fetched {len(unique)} entries for leaderboard {leaderboard_id}")
        return unique

    async def get_user_profile(self, username: str) -> Dict[str, Any]:
        return await self._fetch(
            f"user_profile_{username.lower()}", self.ttls['user_profile'],
            'API_GetUserProfile.php', {'u': username}
        )

    async def validate_user(self, username: str) -> bool:
        """Check whether a RetroAchievements account exists."""
        cache_key = f"validate_{username.lower()}"
        cached = self.cache.get(cache_key, max_age=self.ttls['user_profile'])
        if cached is not None:
            return cached

        try:
            profile = await self.get_user_profile(username)
            valid = bool(profile) and isinstance(profile, dict) and bool(profile.get('User') or profile.get('user'))
        except ProviderNotFoundError:
            valid = False

        self.cache.set(cache_key, valid)
        return valid

    async def get_user_awards(self, username: str) -> Dict[str, Any]:
        return await self._fetch(
            f"user_awards_{username.lower()}", self.ttls['user_awards'],
            'API_GetUserAwards.php', {'u': username}
        )

    async def get_user_recent_achievements(self, username: str, count: int = 50) -> List[Dict[str, Any]]:
        def _limit(payload: Any) -> List[Dict[str, Any]]:
            if not isinstance(payload, list):
                raise MalformedResponseError('API_GetUserRecentAchievements.php', "expected a list")
            return payload[:count]

        return await self._fetch(
            f"recent_achievements_{username.lower()}_{count}", self.ttls['recent_achievements'],
            'API_GetUserRecentAchievements.php', {'u': username, 'c': count},
            transform=_limit
        )

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Cleared RetroAchievements response cache")

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            'entries': len(self.cache),
            'hits': self.cache.hits,
            'misses': self.cache.misses,
            'in_flight': len(self._in_flight),
            'requests_dispatched': self.rate_limiter.total_dispatched,
        }
