"""Async engine, session factory and FastAPI session dependencies."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from medquest.core.config import settings
from medquest.models.base import Base

# Sync URL schemes and the async driver each one maps to
_ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def get_async_database_url(url: str) -> str:
    """Rewrite a plain database URL to use its async driver.

    URLs that already name a driver (``postgresql+asyncpg://``,
    ``sqlite+aiosqlite://``) pass through unchanged.
    """
    for scheme, async_scheme in _ASYNC_DRIVERS.items():
        if url.startswith(scheme):
            return async_scheme + url[len(scheme):]
    return url


database_url = get_async_database_url(settings.database_url)

engine = create_async_engine(
    database_url,
    echo=settings.debug,
    pool_pre_ping=not database_url.startswith("sqlite"),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """Request-scoped session. Endpoints commit; anything left pending is rolled back."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker:
    """Factory handed to the engine, bootstrapper and badge evaluator."""
    return async_session_maker


async def init_db() -> None:
    """Create any missing tables."""
    from medquest.models import account, achievement  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
