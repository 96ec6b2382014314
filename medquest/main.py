import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medquest import __version__
from medquest.api import router
from medquest.api.deps import get_catalog
from medquest.core.config import settings
from medquest.core.database import init_db
from medquest.core.exceptions import ProgressionError

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate the catalog and create database tables on startup."""
    catalog = get_catalog()
    logger.info(
        "Starting %s v%s with %s achievements and %s badges",
        settings.app_name, __version__, len(catalog.achievements), len(catalog.badges),
    )
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down")


app = FastAPI(
    lifespan=lifespan,
    title=settings.app_name,
    description="Achievement, experience and badge service for MedQuest",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProgressionError)
async def progression_error_handler(request: Request, exc: ProgressionError) -> JSONResponse:
    """Render service errors as JSON with their mapped status code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/api/v1/health",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("medquest.main:app", host="0.0.0.0", port=8000, reload=settings.debug)


if __name__ == "__main__":
    run()
