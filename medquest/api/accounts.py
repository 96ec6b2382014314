"""Account endpoints: registration, activity reports and daily check-ins."""

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from medquest.api.deps import get_badge_evaluator, get_bootstrapper, get_engine
from medquest.api.schemas import AccountResponse, AwardedBadgeResponse, UnlockedAchievementResponse
from medquest.core.database import get_db
from medquest.models.achievement import ActivityCategory
from medquest.services.accounts import AccountService
from medquest.services.achievements import AchievementEngine, Bootstrapper
from medquest.services.badges import BadgeEvaluator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["accounts"])


# =============================================================================
# REQUEST / RESPONSE SCHEMAS
# =============================================================================

class AccountCreateRequest(BaseModel):
    """Request body for registering an account."""
    display_name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")


class BootstrapSummary(BaseModel):
    """Achievements seeded for a new account."""
    created: int
    bonus_experience: int
    granted: list[str]


class AccountCreatedResponse(BaseModel):
    """Newly registered account and its bootstrap result."""
    account: AccountResponse
    bootstrap: BootstrapSummary


class ActivityRequest(BaseModel):
    """A completed activity reported by a feature module."""
    category: ActivityCategory
    amount: float = Field(default=1, ge=0, description="Delta for counters, new value for streak/rank/speed")


class ActivityResponse(BaseModel):
    """Updated counter plus anything it unlocked."""
    category: ActivityCategory
    cumulative_count: int
    unlocked_achievements: list[UnlockedAchievementResponse]
    experience_total: int
    level: int


class CheckInResponse(BaseModel):
    """Result of a daily check-in."""
    streak_days: int
    unlocked_achievements: list[UnlockedAchievementResponse]
    new_badges: list[AwardedBadgeResponse]
    experience_total: int
    level: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=AccountCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    request: AccountCreateRequest,
    db: AsyncSession = Depends(get_db),
    bootstrapper: Bootstrapper = Depends(get_bootstrapper),
):
    """Register an account and seed its achievements."""
    service = AccountService(db)
    account = await service.create_account(request.display_name, request.email)
    await db.commit()

    logger.info("Registered account %s", account.id)

    result = await bootstrapper.initialize(account.id)
    await db.refresh(account)
    return AccountCreatedResponse(
        account=AccountResponse.model_validate(account),
        bootstrap=BootstrapSummary(
            created=result.created,
            bonus_experience=result.bonus_experience,
            granted=result.granted,
        ),
    )


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: int, db: AsyncSession = Depends(get_db)):
    """Get an account's progression state."""
    account = await AccountService(db).get_account(account_id)
    return AccountResponse.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: int, db: AsyncSession = Depends(get_db)) -> None:
    """Delete an account with all of its progress and badges."""
    await AccountService(db).delete_account(account_id)
    await db.commit()


@router.post("/{account_id}/activity", response_model=ActivityResponse)
async def report_activity(
    account_id: int,
    request: ActivityRequest,
    db: AsyncSession = Depends(get_db),
    engine: AchievementEngine = Depends(get_engine),
):
    """Update the counter for an activity and evaluate its achievements."""
    service = AccountService(db)
    cumulative = await service.record_activity(account_id, request.category, request.amount)
    # Counters must be committed before the engine reads them in its own session
    await db.commit()

    unlocked = await engine.report_activity(account_id, request.category, cumulative)
    account = await service.get_account(account_id)
    await db.refresh(account)
    return ActivityResponse(
        category=request.category,
        cumulative_count=cumulative,
        unlocked_achievements=[UnlockedAchievementResponse.from_unlock(u) for u in unlocked],
        experience_total=account.experience_total,
        level=account.level,
    )


@router.post("/{account_id}/check-in", response_model=CheckInResponse)
async def check_in(
    account_id: int,
    db: AsyncSession = Depends(get_db),
    engine: AchievementEngine = Depends(get_engine),
    evaluator: BadgeEvaluator = Depends(get_badge_evaluator),
):
    """Record a daily visit, then evaluate streak achievements and custom badges."""
    service = AccountService(db)
    account = await service.check_in(account_id)
    streak = account.streak_days
    await db.commit()

    unlocked = await engine.report_activity(account_id, ActivityCategory.STREAK, streak)
    new_badges = await evaluator.sweep(account_id)
    await db.refresh(account)
    return CheckInResponse(
        streak_days=streak,
        unlocked_achievements=[UnlockedAchievementResponse.from_unlock(u) for u in unlocked],
        new_badges=[AwardedBadgeResponse.from_award(b) for b in new_badges],
        experience_total=account.experience_total,
        level=account.level,
    )
