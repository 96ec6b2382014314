"""Shared test fixtures: in-memory SQLite engine, services wired to it, HTTP client."""

import os

# Set env vars BEFORE importing app modules (config reads at import time)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from medquest.core.database import get_db, get_session_factory  # noqa: E402
from medquest.core.locks import UserLocks  # noqa: E402
from medquest.main import app  # noqa: E402
from medquest.models import Base, ProfileAccount  # noqa: E402
from medquest.services.achievements import AchievementEngine, Bootstrapper  # noqa: E402
from medquest.services.badges import BadgeEvaluator  # noqa: E402
from medquest.services.catalog import build_catalog  # noqa: E402
from medquest.services.lookups import DatabaseLookups  # noqa: E402

# One shared in-memory connection so every session sees the same database
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    poolclass=StaticPool,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

# A Wednesday, fixed so clock-dependent predicates are deterministic
FIXED_NOW = datetime(2025, 3, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db():
    async with TestSession() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = _override_get_db
app.dependency_overrides[get_session_factory] = lambda: TestSession


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def db():
    async with TestSession() as session:
        yield session


@pytest.fixture
def catalog():
    return build_catalog(founder_limit=10, elite_percentile=0.01)


@pytest.fixture
def locks():
    return UserLocks()


@pytest.fixture
def achievement_engine(catalog, locks):
    return AchievementEngine(TestSession, catalog, locks)


@pytest.fixture
def bootstrapper(catalog, locks):
    return Bootstrapper(TestSession, catalog, locks, pioneer_limit=100)


@pytest.fixture
def evaluator(catalog, locks):
    return BadgeEvaluator(
        TestSession,
        catalog,
        locks,
        lookups_factory=lambda session: DatabaseLookups(session, clock=lambda: FIXED_NOW),
    )


async def create_account(
    display_name: str = "Test User",
    email: str | None = None,
    **fields,
) -> ProfileAccount:
    """Insert an account directly, bypassing the API and bootstrap."""
    async with TestSession() as session:
        account = ProfileAccount(
            display_name=display_name,
            email=email or f"{display_name.lower().replace(' ', '.')}.{os.urandom(3).hex()}@example.com",
            **fields,
        )
        session.add(account)
        await session.commit()
        return account


async def load_account(account_id: int) -> ProfileAccount:
    """Fresh copy of an account with its badges loaded."""
    async with TestSession() as session:
        return await session.get(ProfileAccount, account_id)


async def update_account(account_id: int, **fields) -> None:
    async with TestSession() as session:
        account = await session.get(ProfileAccount, account_id)
        for name, value in fields.items():
            setattr(account, name, value)
        await session.commit()


async def load_progress(account_id: int) -> dict:
    """Map achievement id -> ProgressRecord for an account."""
    from sqlalchemy import select

    from medquest.models import ProgressRecord

    async with TestSession() as session:
        result = await session.execute(
            select(ProgressRecord).where(ProgressRecord.user_id == account_id)
        )
        return {record.achievement_id: record for record in result.scalars().all()}
