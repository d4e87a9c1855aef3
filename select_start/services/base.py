"""
Base class for services backed by the bot's own database.

Wraps an async SQLAlchemy session factory with a commit-on-success session
scope and a retry helper for SQLite lock contention.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar('T')

class BaseService:
    """Holds a session factory and hands out scoped sessions."""

    retry_attempts = 3
    retry_base_delay = 0.1  # Doubled on each retry

    def __init__(self, session_factory):
        """
        Args:
            session_factory: ``Database.session_factory`` (an async_sessionmaker)
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self, commit: bool = True) -> AsyncGenerator[AsyncSession, None]:
        """Session scope that rolls back on error and commits on success unless ``commit`` is False."""
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

    async def execute_with_retry(self, func: Callable[[], Awaitable[T]], max_retries: Optional[int] = None) -> T:
        """Run ``func``, retrying OperationalError (e.g. "database is locked") with exponential backoff."""
        attempts = max_retries or self.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await func()
            except OperationalError as e:
                if attempt == attempts:
                    logger.error(f"{func.__name__} failed after {attempts} attempts: {e}")
                    raise
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(f"Retrying {func.__name__} in {delay:.2f}s (attempt {attempt}/{attempts}): {e}")
                await asyncio.sleep(delay)
