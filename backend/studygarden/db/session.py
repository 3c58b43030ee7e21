"""Database session management."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from studygarden.db.engine import get_engine


def create_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to engine (default: the global engine)."""
    return async_sessionmaker(
        bind=engine or get_engine(),
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,  # Prevent lazy loading issues
    )
