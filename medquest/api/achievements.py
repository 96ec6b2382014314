"""Achievement endpoints: catalog, per-account progress and bootstrap."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from medquest.api.deps import get_bootstrapper, get_catalog
from medquest.core.database import get_db
from medquest.models.achievement import AchievementCategory
from medquest.services.accounts import AccountService
from medquest.services.achievements import Bootstrapper, ProgressQueries, count_progress_records
from medquest.services.catalog import Catalog

router = APIRouter(tags=["achievements"])


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class CatalogEntryResponse(BaseModel):
    """A catalog achievement definition."""
    id: str
    category: str
    title: str
    description: str
    icon: str
    target: int
    experience_points: int
    comparison: str


class AchievementProgressResponse(BaseModel):
    """One achievement with the account's progress towards it."""
    achievement_id: str
    title: str
    description: str
    icon: str
    category: str
    target: int
    experience_points: int
    progress: int
    completed: bool
    completed_at: datetime | None
    percentage: int


class AchievementStatsResponse(BaseModel):
    """Completed/total counts for progress bars."""
    completed: int
    total: int
    percentage: int
    experience_total: int
    level: int
    badge_count: int


class AchievementListResponse(BaseModel):
    """Progress list plus summary stats."""
    achievements: list[AchievementProgressResponse]
    stats: AchievementStatsResponse


class BootstrapResponse(BaseModel):
    """Result of seeding an account's achievements."""
    created: int
    bonus_experience: int
    existing: int
    granted: list[str]
    leveled_up: bool
    new_level: int | None


def _validate_category(category: str | None) -> None:
    if category:
        try:
            AchievementCategory(category)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid category. Must be one of: {[c.value for c in AchievementCategory]}",
            )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/achievements/catalog", response_model=list[CatalogEntryResponse])
async def get_catalog_entries(
    category: str | None = Query(default=None, description="Filter by category"),
    catalog: Catalog = Depends(get_catalog),
) -> list[dict[str, Any]]:
    """List every achievement definition in display order."""
    _validate_category(category)
    definitions = catalog.for_category(category) if category else catalog.achievements
    return [
        {
            "id": d.id,
            "category": d.category.value,
            "title": d.title,
            "description": d.description,
            "icon": d.icon,
            "target": d.target,
            "experience_points": d.reward.experience_points,
            "comparison": d.comparison.value,
        }
        for d in definitions
    ]


@router.get("/accounts/{account_id}/achievements", response_model=AchievementListResponse)
async def get_account_achievements(
    account_id: int,
    category: str | None = Query(default=None, description="Filter by category"),
    completed_only: bool = Query(default=False, description="Only show completed achievements"),
    db: AsyncSession = Depends(get_db),
    catalog: Catalog = Depends(get_catalog),
    bootstrapper: Bootstrapper = Depends(get_bootstrapper),
) -> dict[str, Any]:
    """List the account's achievements, seeding them on first read."""
    _validate_category(category)
    account = await AccountService(db).get_account(account_id)

    if not await count_progress_records(db, account_id):
        await bootstrapper.initialize(account_id)
        await db.refresh(account)

    queries = ProgressQueries(db, catalog)
    return {
        "achievements": await queries.list_progress(account_id, category, completed_only),
        "stats": await queries.summary(account_id),
    }


@router.get("/accounts/{account_id}/achievements/stats", response_model=AchievementStatsResponse)
async def get_account_achievement_stats(
    account_id: int,
    db: AsyncSession = Depends(get_db),
    catalog: Catalog = Depends(get_catalog),
) -> dict[str, Any]:
    """Completed/total achievement counts for the account."""
    return await ProgressQueries(db, catalog).summary(account_id)


@router.post("/accounts/{account_id}/achievements/initialize", response_model=BootstrapResponse)
async def initialize_achievements(
    account_id: int,
    bootstrapper: Bootstrapper = Depends(get_bootstrapper),
) -> dict[str, Any]:
    """Seed the account's achievements. Safe to call more than once."""
    result = await bootstrapper.initialize(account_id)
    return {
        "created": result.created,
        "bonus_experience": result.bonus_experience,
        "existing": result.existing,
        "granted": result.granted,
        "leveled_up": result.leveled_up,
        "new_level": result.new_level,
    }
