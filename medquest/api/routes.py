from fastapi import APIRouter

from medquest import __version__
from medquest.api.accounts import router as accounts_router
from medquest.api.achievements import router as achievements_router
from medquest.api.badges import router as badges_router
from medquest.api.deps import get_catalog
from medquest.api.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Check API health and catalog status."""
    catalog = get_catalog()
    return HealthResponse(
        status="healthy",
        version=__version__,
        achievements=len(catalog.achievements),
        badges=len(catalog.badges),
    )


router.include_router(accounts_router)
router.include_router(achievements_router)
router.include_router(badges_router)
