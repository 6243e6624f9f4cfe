from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_limiter import FastAPILimiter
from redis.asyncio import Redis
from sqlalchemy import text
from structlog import get_logger

from rentmatch.config import settings
from rentmatch.core.logging import setup_logging
from rentmatch.database import AsyncSessionFactory
from rentmatch.routers import matching, preferences

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Initialize rate limiter only if Redis is available; skip gracefully on failure
    try:
        if settings.REDIS_URL:
            redis = Redis.from_url(settings.REDIS_URL)
            await FastAPILimiter.init(redis)
    except Exception as e:
        FastAPILimiter.redis = None
        logger.warning("Rate limiter disabled, Redis unavailable", error=str(e))
    yield
    if FastAPILimiter.redis is not None:
        await FastAPILimiter.close()


app = FastAPI(title="Rentmatch Preferences & Matching Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)
app.include_router(preferences.router)
app.include_router(matching.router)


@app.get("/health", tags=["health"])
async def health():
    details = {"status": "ok"}
    try:
        async with AsyncSessionFactory() as session:
            await session.execute(text("SELECT 1"))
        details["database"] = "up"
    except Exception as e:
        details["status"] = "degraded"
        details["database"] = f"down: {str(e)}"
    details["rate_limiter"] = "up" if FastAPILimiter.redis is not None else "disabled"
    details["config"] = {
        "db_url_set": bool(settings.DATABASE_URL),
        "redis_url_set": bool(settings.REDIS_URL),
        "user_management_url_set": bool(settings.USER_MANAGEMENT_URL),
    }
    return details
