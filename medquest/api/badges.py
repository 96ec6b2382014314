"""Custom badge endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from medquest.api.deps import get_badge_evaluator, get_catalog
from medquest.api.schemas import AwardedBadgeResponse, BadgeResponse
from medquest.core.database import get_db
from medquest.models.achievement import BadgeRarity
from medquest.services.accounts import AccountService
from medquest.services.badges import BadgeEvaluator
from medquest.services.catalog import Catalog

router = APIRouter(tags=["badges"])


class BadgeDefinitionResponse(BaseModel):
    id: str
    name: str
    icon: str
    rarity: str
    description: str


class BadgeCatalogResponse(BaseModel):
    """Every custom badge grouped by rarity."""
    total: int
    by_rarity: dict[str, list[BadgeDefinitionResponse]]


class AwardBadgeRequest(BaseModel):
    badge_id: str = Field(min_length=1, max_length=100)


@router.get("/badges", response_model=BadgeCatalogResponse)
async def list_badges(catalog: Catalog = Depends(get_catalog)) -> dict[str, Any]:
    """List all custom badges grouped by rarity."""
    by_rarity: dict[str, list[dict]] = {rarity.value: [] for rarity in BadgeRarity}
    for badge in catalog.badges:
        by_rarity[badge.rarity.value].append({
            "id": badge.id,
            "name": badge.name,
            "icon": badge.icon,
            "rarity": badge.rarity.value,
            "description": badge.description,
        })
    return {"total": len(catalog.badges), "by_rarity": by_rarity}


@router.get("/accounts/{account_id}/badges", response_model=list[BadgeResponse])
async def get_account_badges(account_id: int, db: AsyncSession = Depends(get_db)):
    """Badges held by the account, oldest first."""
    account = await AccountService(db).get_account(account_id)
    return [BadgeResponse.model_validate(badge) for badge in account.badges]


@router.post("/accounts/{account_id}/badges/sweep", response_model=list[AwardedBadgeResponse])
async def sweep_badges(
    account_id: int,
    db: AsyncSession = Depends(get_db),
    evaluator: BadgeEvaluator = Depends(get_badge_evaluator),
):
    """Evaluate every custom badge the account does not hold yet."""
    await AccountService(db).get_account(account_id)
    awarded = await evaluator.sweep(account_id)
    return [AwardedBadgeResponse.from_award(badge) for badge in awarded]


@router.post(
    "/accounts/{account_id}/badges",
    response_model=AwardedBadgeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def award_badge(
    account_id: int,
    request: AwardBadgeRequest,
    evaluator: BadgeEvaluator = Depends(get_badge_evaluator),
):
    """Grant a custom badge by hand."""
    awarded = await evaluator.award(account_id, request.badge_id)
    return AwardedBadgeResponse.from_award(awarded)
