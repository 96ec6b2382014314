"""Dependency injection for API routes."""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from medquest.core.config import settings
from medquest.core.database import get_session_factory
from medquest.core.locks import UserLocks
from medquest.services.achievements import AchievementEngine, Bootstrapper
from medquest.services.badges import BadgeEvaluator
from medquest.services.catalog import Catalog, build_catalog
from medquest.services.lookups import TeamDirectory


@lru_cache
def get_catalog() -> Catalog:
    """Get the process-wide achievement catalog."""
    return build_catalog(
        founder_limit=settings.founder_limit,
        elite_percentile=settings.elite_percentile,
    )


@lru_cache
def get_user_locks() -> UserLocks:
    """Get the process-wide per-user lock registry."""
    return UserLocks()


def get_team_directory() -> TeamDirectory | None:
    """Team lookups are provided by the teams service; none is wired by default."""
    return None


def get_engine(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    catalog: Catalog = Depends(get_catalog),
    locks: UserLocks = Depends(get_user_locks),
) -> AchievementEngine:
    return AchievementEngine(session_factory, catalog, locks)


def get_bootstrapper(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    catalog: Catalog = Depends(get_catalog),
    locks: UserLocks = Depends(get_user_locks),
) -> Bootstrapper:
    return Bootstrapper(session_factory, catalog, locks, pioneer_limit=settings.pioneer_limit)


def get_badge_evaluator(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    catalog: Catalog = Depends(get_catalog),
    locks: UserLocks = Depends(get_user_locks),
    team_directory: TeamDirectory | None = Depends(get_team_directory),
) -> BadgeEvaluator:
    return BadgeEvaluator(session_factory, catalog, locks, team_directory=team_directory)
