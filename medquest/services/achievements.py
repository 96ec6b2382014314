"""Achievement engine: bootstrap, activity evaluation and progress queries.

Every write path opens its own session from the injected session factory and
runs under the per-user lock, so achievement bookkeeping never rolls back the
caller's own transaction.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from numbers import Real

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medquest.core.exceptions import NotFoundError, ValidationError
from medquest.core.locks import UserLocks
from medquest.core.utils import utcnow
from medquest.models.account import AccountBadge, ProfileAccount
from medquest.models.achievement import (
    AchievementCategory,
    ActivityCategory,
    BadgeSource,
    Comparison,
    ProgressRecord,
)
from medquest.services.accounts import LevelChange, deposit_experience
from medquest.services.catalog import AchievementDefinition, Catalog, Reward
from medquest.services.lookups import registration_position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnlockedAchievement:
    achievement_id: str
    title: str
    description: str
    icon: str
    category: AchievementCategory
    reward: Reward
    leveled_up: bool
    new_level: int
    completed_at: datetime


@dataclass(frozen=True)
class BootstrapResult:
    created: int
    bonus_experience: int
    existing: int = 0
    granted: list[str] = field(default_factory=list)
    leveled_up: bool = False
    new_level: int | None = None


def achievement_badge(user_id: int, definition: AchievementDefinition, earned_at: datetime) -> AccountBadge:
    return AccountBadge(
        account_id=user_id,
        badge_id=definition.id,
        name=definition.title,
        icon=definition.reward.badge_icon,
        description=definition.description,
        source=BadgeSource.ACHIEVEMENT.value,
        earned_at=earned_at,
    )


def next_progress(previous: int, value: int, comparison: Comparison) -> int:
    """Fold a reported value into stored progress without ever regressing."""
    if comparison is Comparison.AT_MOST:
        # Ranks: keep the best positive rank, 0 means "unranked"
        if value <= 0:
            return previous
        return value if previous <= 0 else min(previous, value)
    return max(previous, value)


async def count_progress_records(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(ProgressRecord.id)).where(ProgressRecord.user_id == user_id)
    )
    return result.scalar() or 0


# =============================================================================
# BOOTSTRAP
# =============================================================================

class Bootstrapper:
    """Seeds a new account with one progress record per catalog achievement."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog: Catalog,
        locks: UserLocks | None = None,
        pioneer_limit: int = 100,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.locks = locks or UserLocks()
        self.pioneer_limit = pioneer_limit

    def grants_for(self, position: int) -> set[str]:
        """Achievements that are already true at creation time."""
        grants = set()
        for achievement_id in self.catalog.bootstrap_grants:
            if achievement_id == "pioneer" and position > self.pioneer_limit:
                continue
            grants.add(achievement_id)
        return grants

    async def initialize(self, user_id: int) -> BootstrapResult:
        async with self.locks.for_user(user_id):
            async with self.session_factory() as db:
                account = await db.get(ProfileAccount, user_id)
                if account is None:
                    raise NotFoundError(f"Account {user_id} not found")

                existing = await count_progress_records(db, user_id)
                if existing:
                    return BootstrapResult(created=0, bonus_experience=0, existing=existing)

                position = await registration_position(db, user_id)
                grants = self.grants_for(position)
                now = utcnow()
                bonus = 0
                for definition in self.catalog.achievements:
                    granted = definition.id in grants
                    db.add(ProgressRecord(
                        user_id=user_id,
                        achievement_id=definition.id,
                        progress=definition.target if granted else 0,
                        completed=granted,
                        completed_at=now if granted else None,
                    ))
                    if granted:
                        db.add(achievement_badge(user_id, definition, now))
                        bonus += definition.reward.experience_points

                try:
                    await db.flush()
                    change = await deposit_experience(db, user_id, bonus)
                    await db.commit()
                except IntegrityError:
                    # Another bootstrap for this user committed first
                    await db.rollback()
                    existing = await count_progress_records(db, user_id)
                    logger.warning("Concurrent bootstrap for account %s, keeping %s existing records", user_id, existing)
                    return BootstrapResult(created=0, bonus_experience=0, existing=existing)

        granted = [a.id for a in self.catalog.achievements if a.id in grants]
        logger.info(
            "Bootstrapped account %s (position %s): %s records, grants %s, +%s XP",
            user_id, position, len(self.catalog), granted, bonus,
        )
        return BootstrapResult(
            created=len(self.catalog),
            bonus_experience=bonus,
            granted=granted,
            leveled_up=change.leveled_up,
            new_level=change.new_level,
        )


# =============================================================================
# ACTIVITY EVALUATION
# =============================================================================

def _parse_activity(category) -> ActivityCategory | None:
    try:
        return ActivityCategory(category)
    except ValueError:
        logger.warning("Ignoring activity report with unknown category %r", category)
        return None


def _parse_count(cumulative_count) -> int | None:
    if isinstance(cumulative_count, bool) or not isinstance(cumulative_count, Real):
        logger.warning("Ignoring activity report with non-numeric count %r", cumulative_count)
        return None
    if not math.isfinite(cumulative_count) or cumulative_count < 0:
        logger.warning("Ignoring activity report with invalid count %r", cumulative_count)
        return None
    return math.floor(cumulative_count)


class AchievementEngine:
    """Evaluates activity reports against the catalog and awards completions."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog: Catalog,
        locks: UserLocks | None = None,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.locks = locks or UserLocks()

    async def report_activity(
        self,
        user_id: int,
        category: ActivityCategory | str,
        cumulative_count: int | float,
    ) -> list[UnlockedAchievement]:
        """Advance progress for ``category`` and return newly completed achievements.

        ``cumulative_count`` is the user's lifetime total for the category, not
        a delta. Only an unknown account raises; every other problem is logged
        and yields an empty list.
        """
        activity = _parse_activity(category)
        count = _parse_count(cumulative_count)
        if activity is None or count is None:
            return []

        async with self.locks.for_user(user_id):
            async with self.session_factory() as db:
                try:
                    unlocked = await self._evaluate(db, user_id, activity, count)
                    await db.commit()
                except NotFoundError:
                    raise
                except Exception:
                    await db.rollback()
                    logger.exception(
                        "Achievement evaluation failed for account %s (%s=%s)",
                        user_id, activity.value, count,
                    )
                    return []
        return unlocked

    async def _evaluate(
        self,
        db: AsyncSession,
        user_id: int,
        activity: ActivityCategory,
        count: int,
    ) -> list[UnlockedAchievement]:
        account = await db.get(ProfileAccount, user_id)
        if account is None:
            raise NotFoundError(f"Account {user_id} not found")

        definitions = self.catalog.achievements_for_activity(activity)
        compound = [self.catalog.get(i) for i in self.catalog.compound_metrics]
        records = await self._load_records(db, user_id, [d.id for d in (*definitions, *compound)])

        unlocked = []
        for definition in definitions:
            result = await self._advance(db, account, records.get(definition.id), definition, count)
            if result:
                unlocked.append(result)

        # Compound achievements read current account state, so run them after
        # any level-ups from the category above
        for definition in compound:
            value = self.catalog.compound_metrics[definition.id](account)
            result = await self._advance(db, account, records.get(definition.id), definition, value)
            if result:
                unlocked.append(result)
        return unlocked

    async def _load_records(self, db: AsyncSession, user_id: int, achievement_ids: list[str]) -> dict[str, ProgressRecord]:
        result = await db.execute(
            select(ProgressRecord).where(
                ProgressRecord.user_id == user_id,
                ProgressRecord.achievement_id.in_(achievement_ids),
            )
        )
        return {record.achievement_id: record for record in result.scalars().all()}

    async def _advance(
        self,
        db: AsyncSession,
        account: ProfileAccount,
        record: ProgressRecord | None,
        definition: AchievementDefinition,
        value: int,
    ) -> UnlockedAchievement | None:
        # Missing records belong to accounts that were never bootstrapped
        if record is None or record.completed:
            return None

        progress = next_progress(record.progress, value, definition.comparison)
        if progress != record.progress:
            await self.store_progress(db, record, progress, definition.comparison)
            if record.completed:
                return None
            # Another writer may have stored a better value meanwhile
            progress = next_progress(record.progress, progress, definition.comparison)
        if not definition.is_met(progress):
            return None

        completed_at = utcnow()
        if not await self.claim_completion(db, record, progress, completed_at):
            return None

        db.add(achievement_badge(account.id, definition, completed_at))
        change: LevelChange = await deposit_experience(db, account.id, definition.reward.experience_points)
        logger.info(
            "Account %s unlocked %s (+%s XP)",
            account.id, definition.id, definition.reward.experience_points,
        )
        return UnlockedAchievement(
            achievement_id=definition.id,
            title=definition.title,
            description=definition.description,
            icon=definition.icon,
            category=definition.category,
            reward=definition.reward,
            leveled_up=change.leveled_up,
            new_level=change.new_level,
            completed_at=completed_at,
        )

    @staticmethod
    async def store_progress(
        db: AsyncSession,
        record: ProgressRecord,
        progress: int,
        comparison: Comparison,
    ) -> bool:
        """Write ``progress`` only if it improves an open record; True when it did."""
        if comparison is Comparison.AT_MOST:
            improves = (ProgressRecord.progress <= 0) | (ProgressRecord.progress > progress)
        else:
            improves = ProgressRecord.progress < progress
        result = await db.execute(
            update(ProgressRecord)
            .where(ProgressRecord.id == record.id, ProgressRecord.completed.is_(False), improves)
            .values(progress=progress)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(record)
        return result.rowcount == 1

    @staticmethod
    async def claim_completion(
        db: AsyncSession,
        record: ProgressRecord,
        progress: int,
        completed_at: datetime,
    ) -> bool:
        """Flip ``completed`` only if nobody else has; True when this call won."""
        result = await db.execute(
            update(ProgressRecord)
            .where(ProgressRecord.id == record.id, ProgressRecord.completed.is_(False))
            .values(completed=True, completed_at=completed_at, progress=progress)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(record)
        return result.rowcount == 1


# =============================================================================
# QUERIES
# =============================================================================

def parse_category(category: AchievementCategory | str) -> AchievementCategory:
    try:
        return AchievementCategory(category)
    except ValueError:
        raise ValidationError(f"Unknown achievement category: {category!r}")


class ProgressQueries:
    """Read-only views over a user's progress, merged with catalog metadata."""

    def __init__(self, db: AsyncSession, catalog: Catalog):
        self.db = db
        self.catalog = catalog

    async def list_progress(
        self,
        user_id: int,
        category: AchievementCategory | str | None = None,
        completed_only: bool = False,
    ) -> list[dict]:
        if category:
            category = parse_category(category)
        result = await self.db.execute(
            select(ProgressRecord).where(ProgressRecord.user_id == user_id)
        )
        records = {record.achievement_id: record for record in result.scalars().all()}

        definitions = self.catalog.for_category(category) if category else self.catalog.achievements
        items = []
        for definition in definitions:
            record = records.get(definition.id)
            if record is None:
                continue
            if completed_only and not record.completed:
                continue
            items.append({
                "achievement_id": definition.id,
                "title": definition.title,
                "description": definition.description,
                "icon": definition.icon,
                "category": definition.category.value,
                "target": definition.target,
                "experience_points": definition.reward.experience_points,
                "progress": record.progress,
                "completed": record.completed,
                "completed_at": record.completed_at,
                "percentage": self._percentage(definition, record),
            })
        return items

    @staticmethod
    def _percentage(definition: AchievementDefinition, record: ProgressRecord) -> int:
        if record.completed:
            return 100
        if definition.comparison is Comparison.AT_MOST:
            return 0
        return min(100, round(record.progress / definition.target * 100))

    async def summary(self, user_id: int) -> dict:
        account = await self.db.get(ProfileAccount, user_id)
        if account is None:
            raise NotFoundError(f"Account {user_id} not found")

        result = await self.db.execute(
            select(ProgressRecord.completed, func.count(ProgressRecord.id))
            .where(ProgressRecord.user_id == user_id)
            .group_by(ProgressRecord.completed)
        )
        counts = {bool(completed): count for completed, count in result.all()}
        completed = counts.get(True, 0)
        total = completed + counts.get(False, 0)

        return {
            "completed": completed,
            "total": total,
            "percentage": round(completed / total * 100) if total else 0,
            "experience_total": account.experience_total,
            "level": account.level,
            "badge_count": len(account.badges),
        }
