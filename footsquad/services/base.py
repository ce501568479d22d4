"""
Base class for services that open their own sessions rather than joining
a caller's transaction: notification storage and the housekeeping sweeps.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.utils.logger import setup_logger

T = TypeVar('T')

class BaseService:
    """Session handling and lock-retry for self-contained services."""
    
    def __init__(self, session_factory, max_retries: int = 3):
        """
        Args:
            session_factory: Async session factory from Database
            max_retries: Attempts made while the database reports itself locked
        """
        self.session_factory = session_factory
        self.max_retries = max_retries
        self.logger = setup_logger(f"{__name__}.{type(self).__name__}")
    
    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits when the block succeeds and rolls back otherwise."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
    
    async def execute_with_retry(self, func: Callable[[], Awaitable[T]], description: str) -> T:
        """
        Run ``func``, trying again while SQLite answers "database is locked".

        Any other database error, or the last locked error, is raised.
        """
        delay = 0.1
        for attempt in range(1, self.max_retries + 1):
            try:
                return await func()
            except OperationalError as e:
                if attempt == self.max_retries or 'locked' not in str(e).lower():
                    raise
                self.logger.warning(f"{description}: database locked, retry {attempt}/{self.max_retries}")
                await asyncio.sleep(delay)
                delay *= 2
