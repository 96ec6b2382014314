"""Custom badge evaluation and manual awards."""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medquest.core.exceptions import ConflictError, NotFoundError
from medquest.core.locks import UserLocks
from medquest.core.utils import utcnow
from medquest.models.account import AccountBadge, ProfileAccount
from medquest.models.achievement import BadgeRarity, BadgeSource
from medquest.services.catalog import Catalog, CustomBadgeDefinition
from medquest.services.lookups import BadgeLookups, DatabaseLookups, TeamDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwardedBadge:
    badge_id: str
    name: str
    icon: str
    rarity: BadgeRarity
    description: str
    earned_at: datetime


class BadgeEvaluator:
    """Runs custom badge predicates and appends each earned badge exactly once.

    Custom badges carry no experience reward.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog: Catalog,
        locks: UserLocks | None = None,
        team_directory: TeamDirectory | None = None,
        lookups_factory: Callable[[AsyncSession], BadgeLookups] | None = None,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.locks = locks or UserLocks()
        self.lookups_factory = lookups_factory or (
            lambda db: DatabaseLookups(db, team_directory=team_directory)
        )

    async def sweep(self, user_id: int) -> list[AwardedBadge]:
        """Evaluate every badge the user does not hold yet.

        Failures are logged and produce an empty list; a single failing
        predicate only disqualifies its own badge.
        """
        async with self.locks.for_user(user_id):
            async with self.session_factory() as db:
                try:
                    awarded = await self._sweep(db, user_id)
                    if awarded:
                        await db.commit()
                except Exception:
                    await db.rollback()
                    logger.exception("Badge sweep failed for account %s", user_id)
                    return []
        return awarded

    async def _sweep(self, db: AsyncSession, user_id: int) -> list[AwardedBadge]:
        account = await db.get(ProfileAccount, user_id)
        if account is None:
            logger.warning("Badge sweep skipped, account %s not found", user_id)
            return []

        lookups = self.lookups_factory(db)
        held = {badge.badge_id for badge in account.badges}
        now = lookups.now()
        awarded = []
        for badge in self.catalog.badges:
            if badge.id in held:
                continue
            if not await self._is_met(badge, account, lookups):
                continue
            # Appending keeps account.badges current for later predicates in this sweep
            account.badges.append(_custom_badge_row(badge, now))
            held.add(badge.id)
            awarded.append(_awarded(badge, now))
            logger.info("Account %s earned badge %s", user_id, badge.id)
        return awarded

    async def _is_met(self, badge: CustomBadgeDefinition, account: ProfileAccount, lookups: BadgeLookups) -> bool:
        try:
            result = badge.predicate(account, lookups)
            if inspect.isawaitable(result):
                result = await result
            return bool(result)
        except Exception:
            logger.warning("Badge predicate %s failed for account %s", badge.id, account.id, exc_info=True)
            return False

    async def award(self, user_id: int, badge_id: str) -> AwardedBadge:
        """Grant a custom badge by hand, bypassing its predicate."""
        badge = self.catalog.badge(badge_id)
        if badge is None:
            raise NotFoundError(f"Badge {badge_id} not found")

        async with self.locks.for_user(user_id):
            async with self.session_factory() as db:
                account = await db.get(ProfileAccount, user_id)
                if account is None:
                    raise NotFoundError(f"Account {user_id} not found")
                if account.holds_badge(badge.id):
                    raise ConflictError(f"Account {user_id} already holds badge {badge.id}")

                now = utcnow()
                account.badges.append(_custom_badge_row(badge, now))
                await db.commit()

        logger.info("Badge %s awarded manually to account %s", badge.id, user_id)
        return _awarded(badge, now)


def _custom_badge_row(badge: CustomBadgeDefinition, earned_at: datetime) -> AccountBadge:
    return AccountBadge(
        badge_id=badge.id,
        name=badge.name,
        icon=badge.icon,
        rarity=badge.rarity.value,
        description=badge.description,
        source=BadgeSource.CUSTOM.value,
        earned_at=earned_at,
    )


def _awarded(badge: CustomBadgeDefinition, earned_at: datetime) -> AwardedBadge:
    return AwardedBadge(
        badge_id=badge.id,
        name=badge.name,
        icon=badge.icon,
        rarity=badge.rarity,
        description=badge.description,
        earned_at=earned_at,
    )
