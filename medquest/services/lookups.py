"""External lookups available to custom badge predicates.

Predicates never import other models directly; everything they need beyond
the account row comes through a ``BadgeLookups`` object.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from medquest.core.exceptions import LookupUnavailableError
from medquest.core.utils import utcnow
from medquest.models.account import ProfileAccount
from medquest.models.achievement import ProgressRecord


class TeamDirectory(Protocol):
    """Team membership data owned by the teams feature."""

    async def captains_top_team(self, user_id: int, top: int) -> bool: ...


class BadgeLookups(Protocol):
    def now(self) -> datetime: ...

    async def team_count(self, account: ProfileAccount) -> int: ...

    async def captains_top_team(self, account: ProfileAccount, top: int = 10) -> bool: ...

    async def registration_position(self, account: ProfileAccount) -> int: ...

    async def experience_rank(self, account: ProfileAccount) -> tuple[int, int]: ...

    async def achievement_completion(self, account: ProfileAccount) -> tuple[int, int]: ...


async def registration_position(db: AsyncSession, user_id: int) -> int:
    """1-based registration order, counting accounts created up to this one."""
    result = await db.execute(
        select(func.count(ProfileAccount.id)).where(ProfileAccount.id <= user_id)
    )
    return result.scalar() or 0


class DatabaseLookups:
    """BadgeLookups backed by the progression database."""

    def __init__(
        self,
        db: AsyncSession,
        team_directory: TeamDirectory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.team_directory = team_directory
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    async def team_count(self, account: ProfileAccount) -> int:
        return account.teams_joined

    async def captains_top_team(self, account: ProfileAccount, top: int = 10) -> bool:
        if self.team_directory is None:
            raise LookupUnavailableError("No team directory configured")
        return await self.team_directory.captains_top_team(account.id, top)

    async def registration_position(self, account: ProfileAccount) -> int:
        return await registration_position(self.db, account.id)

    async def experience_rank(self, account: ProfileAccount) -> tuple[int, int]:
        """Return (rank, total accounts); ties share the better rank."""
        ahead = await self.db.execute(
            select(func.count(ProfileAccount.id)).where(
                ProfileAccount.experience_total > account.experience_total
            )
        )
        total = await self.db.execute(select(func.count(ProfileAccount.id)))
        return (ahead.scalar() or 0) + 1, total.scalar() or 0

    async def achievement_completion(self, account: ProfileAccount) -> tuple[int, int]:
        """Return (completed, total) progress records for the account."""
        result = await self.db.execute(
            select(
                func.count(ProgressRecord.id),
                func.sum(case((ProgressRecord.completed.is_(True), 1), else_=0)),
            ).where(ProgressRecord.user_id == account.id)
        )
        total, completed = result.one()
        return completed or 0, total or 0
