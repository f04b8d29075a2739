"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from realdeal.api.cache_routes import router as cache_router
from realdeal.api.comment_routes import router as comments_router
from realdeal.api.genre_routes import router as genres_router
from realdeal.api.post_routes import router as posts_router
from realdeal.api.user_routes import experience_router
from realdeal.api.user_routes import router as users_router
from realdeal.core.redis_client import close_redis
from realdeal.domain.exceptions import (
    AccessDeniedError,
    ConflictError,
    EngagementError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)
from realdeal.infrastructure.database.connection import init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[EngagementError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    AccessDeniedError: status.HTTP_403_FORBIDDEN,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting RealDeal engagement engine")
    await init_db()
    logger.info("Database initialized")
    yield
    await close_redis()
    logger.info("Shutting down RealDeal engagement engine")


app = FastAPI(
    title="RealDeal",
    description="Engagement and ranking engine for the RealDeal social platform",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngagementError)
async def engagement_error_handler(request: Request, exc: EngagementError) -> JSONResponse:
    code = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(OperationalError)
async def store_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Store unavailable"},
    )


app.include_router(users_router)
app.include_router(experience_router)
app.include_router(genres_router)
app.include_router(posts_router)
app.include_router(comments_router)
app.include_router(cache_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
