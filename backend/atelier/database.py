"""
SQLAlchemy Async Database Configuration.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from atelier.config import get_settings
from atelier.models.base import Base  # noqa: F401  re-exported for create_all

settings = get_settings()

engine_kwargs = {
    "echo": settings.DEBUG,
    "future": True,
    "pool_pre_ping": True,
}
# SQLite pools do not accept sizing arguments
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_kwargs.update(
        pool_size=10,
        max_overflow=20,
        pool_timeout=10,
        pool_recycle=900,
    )

# Async Engine with connection pool configuration
engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

# Async Session Factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """Dependency for FastAPI routes to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
