"""
Pytest configuration and shared fixtures for the Select Start test suite.

Provides a controllable clock for the rate limiter and caches, a fresh
SQLite database per test, and small factories for ranking input.
"""

import asyncio
import os
import tempfile
from typing import List

import pytest
import pytest_asyncio

# Keep log files out of the working tree
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "select_start_test_logs"))

from select_start.data_models.leaderboard import LeaderboardEntry, Participant
from select_start.database.database import Database


class FakeClock:
    """Manually advanced clock whose sleep moves time forward instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path):
    """File-backed SQLite database, created fresh for each test."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.initialize()
    yield database
    await database.close()


def make_participant(username: str, achieved: int, points: int = 1, percentage=None) -> Participant:
    return Participant(username=username, achieved=achieved, points=points, percentage=percentage)


def make_entry(username: str, rank: int, score: str = None) -> LeaderboardEntry:
    return LeaderboardEntry(username=username, api_rank=rank, score=score or f"{rank * 100}")
