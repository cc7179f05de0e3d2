"""Transaction boundary for mutating service operations."""
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any exception.

    Usage:
        async with transaction(self.db):
            self.db.add(entity)
    """
    try:
        yield db
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.debug("transaction_rolled_back", error=str(e), type=type(e).__name__)
        raise

