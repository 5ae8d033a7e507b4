"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session on the run-tracking database; overridden in tests"""
    async for session in get_session():
        yield session
