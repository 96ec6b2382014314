"""Account service: registration, experience, activity counters and streaks."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from medquest.core.exceptions import ConflictError, NotFoundError, ValidationError
from medquest.core.utils import ensure_utc, utcnow
from medquest.models.account import ProfileAccount
from medquest.models.achievement import ActivityCategory

logger = logging.getLogger(__name__)


# =============================================================================
# LEVEL CALCULATION
# =============================================================================

XP_PER_LEVEL = 100


def level_for_experience(experience_total: int) -> int:
    """Level 1 at 0 XP, one more level every 100 XP."""
    return experience_total // XP_PER_LEVEL + 1


@dataclass(frozen=True)
class LevelChange:
    leveled_up: bool
    new_level: int
    experience_total: int


async def deposit_experience(db: AsyncSession, user_id: int, amount: int) -> LevelChange:
    """Add experience to an account and recompute its level in one statement.

    This is the only place that writes ``experience_total``. Non-positive
    amounts leave the account untouched and never report a level-up.
    """
    account = await db.get(ProfileAccount, user_id)
    if account is None:
        raise NotFoundError(f"Account {user_id} not found")

    if amount <= 0:
        return LevelChange(
            leveled_up=False,
            new_level=account.level,
            experience_total=account.experience_total,
        )

    previous_level = account.level
    new_total = ProfileAccount.experience_total + amount
    await db.execute(
        update(ProfileAccount)
        .where(ProfileAccount.id == user_id)
        .values(experience_total=new_total, level=new_total // XP_PER_LEVEL + 1)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(account, attribute_names=["experience_total", "level"])

    leveled_up = account.level > previous_level
    if leveled_up:
        logger.info("Account %s reached level %s (%s XP)", user_id, account.level, account.experience_total)
    return LevelChange(
        leveled_up=leveled_up,
        new_level=account.level,
        experience_total=account.experience_total,
    )


# =============================================================================
# ACTIVITY COUNTERS
# =============================================================================

class CounterMode(str, Enum):
    """How a reported amount is folded into a cumulative counter."""
    ADD = "add"  # amount is a delta
    MAX = "max"  # keep the best value seen
    SET = "set"  # amount replaces the current value


ACTIVITY_COUNTERS: dict[ActivityCategory, tuple[str, CounterMode]] = {
    ActivityCategory.CHAT: ("total_chats", CounterMode.ADD),
    ActivityCategory.REPORT: ("total_reports", CounterMode.ADD),
    ActivityCategory.VISION: ("total_vision_analyses", CounterMode.ADD),
    ActivityCategory.SYMPTOM: ("total_symptom_checks", CounterMode.ADD),
    ActivityCategory.STREAK: ("streak_days", CounterMode.SET),
    ActivityCategory.RUN: ("total_runs", CounterMode.ADD),
    ActivityCategory.DISTANCE: ("total_distance_km", CounterMode.ADD),
    ActivityCategory.TERRITORY: ("total_territories", CounterMode.ADD),
    ActivityCategory.TEAM: ("team_contribution_km", CounterMode.ADD),
    ActivityCategory.CHALLENGE: ("total_challenges", CounterMode.ADD),
    ActivityCategory.SPEED: ("best_speed_kmh", CounterMode.MAX),
    ActivityCategory.LEADERBOARD: ("leaderboard_rank", CounterMode.SET),
}

_FLOAT_COUNTERS = {"total_distance_km", "team_contribution_km", "best_speed_kmh"}


def parse_activity(category: ActivityCategory | str) -> ActivityCategory:
    try:
        return ActivityCategory(category)
    except ValueError:
        raise ValidationError(f"Unknown activity category: {category!r}")


class AccountService:
    """Account reads and writes on a caller-owned session.

    Methods flush but do not commit; the caller decides the transaction
    boundary.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_account(self, display_name: str, email: str) -> ProfileAccount:
        email = email.strip().lower()
        existing = await self.db.execute(
            select(func.count(ProfileAccount.id)).where(ProfileAccount.email == email)
        )
        if existing.scalar():
            raise ConflictError(f"An account with email {email} already exists")

        account = ProfileAccount(display_name=display_name.strip(), email=email)
        self.db.add(account)
        await self.db.flush()
        logger.info("Created account %s", account.id)
        return account

    async def get_account(self, user_id: int) -> ProfileAccount:
        account = await self.db.get(ProfileAccount, user_id)
        if account is None:
            raise NotFoundError(f"Account {user_id} not found")
        return account

    async def add_experience(self, user_id: int, amount: int) -> LevelChange:
        change = await deposit_experience(self.db, user_id, amount)
        await self.db.flush()
        return change

    async def record_activity(
        self,
        user_id: int,
        category: ActivityCategory | str,
        amount: float = 1,
    ) -> int:
        """Fold ``amount`` into the counter behind ``category``.

        Returns the new cumulative value, floored to an integer, ready to be
        passed on to ``AchievementEngine.report_activity``.
        """
        activity = parse_activity(category)
        if isinstance(amount, bool) or not math.isfinite(amount) or amount < 0:
            raise ValidationError(f"Activity amount must be a non-negative number, got {amount!r}")

        account = await self.get_account(user_id)
        column, mode = ACTIVITY_COUNTERS[activity]
        if column not in _FLOAT_COUNTERS:
            amount = int(amount)

        current = getattr(account, column)
        if mode is CounterMode.ADD:
            value = current + amount
        elif mode is CounterMode.MAX:
            value = max(current, amount)
        else:
            value = amount
        setattr(account, column, value)
        account.last_active_at = utcnow()
        await self.db.flush()
        return math.floor(value)

    async def check_in(self, user_id: int, now: datetime | None = None) -> ProfileAccount:
        """Record a daily visit and maintain the consecutive-day streak.

        Same calendar day keeps the streak, the next day extends it, and any
        longer gap restarts it at 1.
        """
        account = await self.get_account(user_id)
        now = ensure_utc(now) or utcnow()
        last_active = ensure_utc(account.last_active_at)

        if last_active is None or account.streak_days == 0:
            account.streak_days = 1
        else:
            days = (now.date() - last_active.date()).days
            if days == 1:
                account.streak_days += 1
            elif days > 1:
                account.streak_days = 1

        account.last_active_at = now
        await self.db.flush()
        logger.debug("Account %s checked in, streak %s", user_id, account.streak_days)
        return account

    async def delete_account(self, user_id: int) -> None:
        """Delete an account together with its progress records and badges."""
        account = await self.get_account(user_id)
        await self.db.delete(account)
        await self.db.flush()
        logger.info("Deleted account %s", user_id)
