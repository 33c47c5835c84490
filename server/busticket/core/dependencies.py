"""FastAPI dependencies for the database session, the hold store and the clock."""

from datetime import datetime
from typing import AsyncGenerator, Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_async_session
from .store import get_store


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def get_clock() -> Callable[[], datetime]:
    """Current-time source for hold expiry; overridden in tests with a controllable clock."""
    return datetime.utcnow


# Shared dependency markers for routers
DB_DEPENDENCY = Depends(get_db)
STORE_DEPENDENCY = Depends(get_store)
CLOCK_DEPENDENCY = Depends(get_clock)
