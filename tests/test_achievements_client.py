"""
Tests for AchievementsClient caching, pagination and error mapping.

Network access is replaced either by patching ``_request`` or by a small
fake aiohttp session.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from select_start.data_models.leaderboard import LeaderboardEntry
from select_start.services.achievements_client import AchievementsClient
from select_start.services.rate_limiter import RateLimiter
from select_start.services.response_cache import ResponseCache
from select_start.utils.exceptions import (
    MalformedResponseError, ProviderNotFoundError, ProviderUnavailableError,
    RateLimitedError, RateLimitExceededError
)


def make_client(clock=None, **kwargs) -> AchievementsClient:
    limiter = RateLimiter(interval=0, max_retries=2, retry_delay=0)
    cache = ResponseCache(ttl=1800, clock=clock) if clock else None
    return AchievementsClient("bot_user", "secret", rate_limiter=limiter, cache=cache, **kwargs)


def leaderboard_rows(start: int, count: int):
    return [
        {"User": f"player{rank}", "Rank": rank, "Score": rank * 10, "FormattedScore": str(rank * 10)}
        for rank in range(start + 1, start + count + 1)
    ]


class FakeResponse:
    def __init__(self, status=200, payload=None, json_error=None):
        self.status = status
        self._payload = payload
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error:
            raise self._json_error
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession.get."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if self.error:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True


class TestCaching:
    """Identical calls within the TTL hit the network once."""

    @pytest.mark.asyncio
    async def test_injected_empty_cache_is_used(self, clock):
        cache = ResponseCache(ttl=60, clock=clock)
        client = AchievementsClient("bot_user", "secret", rate_limiter=RateLimiter(interval=0), cache=cache)
        client._request = AsyncMock(return_value={"Title": "Metroid"})

        assert client.cache is cache
        await client.get_game_info(1)
        assert "game_info_1" in cache

        # The injected cache's TTL applies, not the game info default
        clock.advance(61)
        await client.get_game_info(1)
        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_repeated_call_uses_cache(self):
        client = make_client()
        client._request = AsyncMock(return_value={"Title": "Super Metroid"})

        first = await client.get_game_info(3)
        second = await client.get_game_info(3)

        assert first == second == {"Title": "Super Metroid"}
        client._request.assert_awaited_once_with("API_GetGame.php", {"i": 3})

    @pytest.mark.asyncio
    async def test_different_parameters_are_cached_separately(self):
        client = make_client()
        client._request = AsyncMock(return_value={"Achievements": {}})

        await client.get_user_game_progress("Alice", 1)
        await client.get_user_game_progress("Alice", 2)
        await client.get_user_game_progress("alice", 1)

        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_accessor_ttl_expiry_refetches(self, clock):
        client = make_client(clock)
        client._request = AsyncMock(return_value=leaderboard_rows(0, 2))

        await client.get_leaderboard_entries(77)
        clock.advance(client.ttls['leaderboard'] + 1)
        await client.get_leaderboard_entries(77)

        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self):
        client = make_client()
        client._request = AsyncMock(side_effect=[
            ProviderUnavailableError("API_GetGame.php", "HTTP 503", status=503),
            {"Title": "Metroid"},
        ])

        with pytest.raises(ProviderUnavailableError):
            await client.get_game_info(1)
        assert await client.get_game_info(1) == {"Title": "Metroid"}
        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refetch(self):
        client = make_client()
        client._request = AsyncMock(return_value={"User": "Alice"})

        await client.get_user_profile("Alice")
        client.clear_cache()
        await client.get_user_profile("Alice")

        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_fetch_independently_by_default(self):
        client = make_client()

        async def slow_request(endpoint, params):
            await asyncio.sleep(0.01)
            return {"Title": "Zelda"}

        client._request = AsyncMock(side_effect=slow_request)
        await asyncio.gather(client.get_game_info(5), client.get_game_info(5))

        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_coalesced_misses_share_one_fetch(self):
        client = make_client(coalesce_requests=True)

        async def slow_request(endpoint, params):
            await asyncio.sleep(0.01)
            return {"Title": "Zelda"}

        client._request = AsyncMock(side_effect=slow_request)
        results = await asyncio.gather(client.get_game_info(5), client.get_game_info(5))

        assert results == [{"Title": "Zelda"}, {"Title": "Zelda"}]
        assert client._request.await_count == 1
        assert client.get_cache_stats()['in_flight'] == 0


class TestLeaderboards:
    """Leaderboard pages are normalized, clamped and paginated."""

    @pytest.mark.asyncio
    async def test_page_is_normalized(self):
        client = make_client()
        client._request = AsyncMock(return_value={"Results": leaderboard_rows(0, 2)})

        entries = await client.get_leaderboard_entries(10, offset=0, count=2)

        assert entries == [
            LeaderboardEntry(username="player1", api_rank=1, score="10", raw_value=10.0),
            LeaderboardEntry(username="player2", api_rank=2, score="20", raw_value=20.0),
        ]

    @pytest.mark.asyncio
    async def test_count_is_clamped_to_page_size(self):
        client = make_client()
        client._request = AsyncMock(return_value=[])

        await client.get_leaderboard_entries(10, offset=-5, count=5000)

        client._request.assert_awaited_once_with(
            "API_GetLeaderboardEntries.php", {"i": 10, "o": 0, "c": 500}
        )

    @pytest.mark.asyncio
    async def test_malformed_page_raises(self):
        client = make_client()
        client._request = AsyncMock(return_value="not json rows")

        with pytest.raises(MalformedResponseError):
            await client.get_leaderboard_entries(10)

    @pytest.mark.asyncio
    async def test_all_entries_paginates_and_deduplicates(self):
        client = make_client()

        async def paged(endpoint, params):
            if params["o"] == 0:
                return leaderboard_rows(0, 500)
            # Second page repeats a user from the first one with different case
            return [{"User": "PLAYER1", "Rank": 501, "Score": 1}] + leaderboard_rows(500, 3)

        client._request = AsyncMock(side_effect=paged)

        entries = await client.get_all_leaderboard_entries(42, max_entries=1000)

        assert client._request.await_count == 2
        assert len(entries) == 503
        assert [e.api_rank for e in entries] == sorted(e.api_rank for e in entries)
        assert entries[0].username == "player1"
        assert sum(1 for e in entries if e.username.lower() == "player1") == 1

    @pytest.mark.asyncio
    async def test_dropped_row_on_full_page_keeps_paging(self):
        client = make_client()

        async def paged(endpoint, params):
            if params["o"] == 0:
                rows = leaderboard_rows(0, 500)
                rows[10]["User"] = ""
                return rows
            return leaderboard_rows(500, 100)

        client._request = AsyncMock(side_effect=paged)

        entries = await client.get_all_leaderboard_entries(42, max_entries=1000)

        assert client._request.await_count == 2
        assert len(entries) == 599
        assert "player600" in {e.username for e in entries}

    @pytest.mark.asyncio
    async def test_short_page_stops_paging(self):
        client = make_client()
        client._request = AsyncMock(return_value=leaderboard_rows(0, 30))

        entries = await client.get_all_leaderboard_entries(42, max_entries=1000)

        assert client._request.await_count == 1
        assert len(entries) == 30

    @pytest.mark.asyncio
    async def test_all_entries_respects_max(self):
        client = make_client()
        client._request = AsyncMock(side_effect=lambda endpoint, params: leaderboard_rows(params["o"], params["c"]))

        entries = await client.get_all_leaderboard_entries(42, max_entries=600)

        assert len(entries) == 600
        calls = [call.args[1] for call in client._request.await_args_list]
        assert [(c["o"], c["c"]) for c in calls] == [(0, 500), (500, 100)]


class TestUserLookups:
    """User validation and short-TTL accessors."""

    @pytest.mark.asyncio
    async def test_validate_user_not_found(self):
        client = make_client()
        client._request = AsyncMock(side_effect=ProviderNotFoundError("API_GetUserProfile.php"))

        assert await client.validate_user("ghost") is False
        assert await client.validate_user("ghost") is False
        assert client._request.await_count == 1

    @pytest.mark.asyncio
    async def test_validate_user_exists(self):
        client = make_client()
        client._request = AsyncMock(return_value={"User": "Alice", "TotalPoints": 100})

        assert await client.validate_user("Alice") is True

    @pytest.mark.asyncio
    async def test_recent_achievements_are_limited(self, clock):
        client = make_client(clock)
        client._request = AsyncMock(return_value=[{"ID": i} for i in range(10)])

        recent = await client.get_user_recent_achievements("Alice", count=3)
        assert recent == [{"ID": 0}, {"ID": 1}, {"ID": 2}]

        clock.advance(61)
        await client.get_user_recent_achievements("Alice", count=3)
        assert client._request.await_count == 2

    @pytest.mark.asyncio
    async def test_awards_use_short_ttl(self, clock):
        client = make_client(clock)
        client._request = AsyncMock(return_value={"VisibleUserAwards": []})

        await client.get_user_awards("Alice")
        clock.advance(100)
        await client.get_user_awards("Alice")
        clock.advance(30)
        await client.get_user_awards("Alice")

        assert client._request.await_count == 2


class TestHttpMapping:
    """HTTP outcomes map onto the provider error types."""

    @pytest.mark.asyncio
    async def test_success_includes_credentials(self):
        session = FakeSession(FakeResponse(payload={"Title": "Metroid"}))
        client = make_client(session=session)

        assert await client.get_game_info(1) == {"Title": "Metroid"}
        url, params = session.calls[0]
        assert url == "https://retroachievements.org/API/API_GetGame.php"
        assert params == {"z": "bot_user", "y": "secret", "i": "1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, error_type", [
        (429, RateLimitedError),
        (404, ProviderNotFoundError),
        (500, ProviderUnavailableError),
    ])
    async def test_status_codes(self, status, error_type):
        client = make_client(session=FakeSession(FakeResponse(status=status)))

        with pytest.raises(error_type):
            await client._request("API_GetGame.php", {"i": 1})

    @pytest.mark.asyncio
    async def test_persistent_429_exhausts_retries(self):
        session = FakeSession(FakeResponse(status=429))
        client = make_client(session=session)

        with pytest.raises(RateLimitExceededError):
            await client.get_game_info(1)
        assert len(session.calls) == 3

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = make_client(session=FakeSession(FakeResponse(json_error=ValueError("bad json"))))

        with pytest.raises(MalformedResponseError):
            await client.get_game_info(1)

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self):
        session = FakeSession(error=asyncio.TimeoutError())
        client = make_client(session=session)

        with pytest.raises(ProviderUnavailableError):
            await client.get_game_info(1)
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = FakeSession(FakeResponse(payload={}))
        client = make_client(session=session)

        await client.close()

        assert session.closed is False
