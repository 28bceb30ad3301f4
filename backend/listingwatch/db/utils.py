"""Database utility functions and common queries."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from listingwatch.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Usage in FastAPI endpoints:
        @router.post("/targets/{target_id}/scan")
        async def scan_target(target_id: UUID, db: AsyncSession = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
