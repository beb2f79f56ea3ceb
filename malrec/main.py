"""MAL Recommendations API - FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from datetime import timezone

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from malrec.middleware import CorrelationIdFilter

# Configure logging - every line carries the request's correlation ID
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] [%(correlation_id)s] %(message)s",
    datefmt="%H:%M:%S",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationIdFilter())

# Suppress noisy loggers - SQLAlchemy is especially chatty
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.api.v1.recommendations import limiter
from malrec.api.v1.router import api_router
from malrec.config import get_settings
from malrec.core.cache import CacheService
from malrec.core.errors import (
    NoHighRatingsError, NoRatingsError, RecommendationError, ShareLinkNotFoundError, UpstreamError,
)
from malrec.core.mal_client import MALClient
from malrec.db.database import create_engine, create_session_factory, get_db, init_db
from malrec.jobs.cleanup import cleanup_expired
from malrec.middleware import CorrelationIDMiddleware
from malrec.services.cooldown import expiry_policy_from_settings
from malrec.services.recommendation_cache_service import RecommendationCacheService
from malrec.services.recommendation_service import GenerationLocks

logger = logging.getLogger(__name__)
settings = get_settings()

ERROR_STATUS = {
    NoRatingsError: 422,
    NoHighRatingsError: 422,
    ShareLinkNotFoundError: 404,
    UpstreamError: 502,
}

scheduler = AsyncIOScheduler(
    timezone=timezone.utc,
    job_defaults={
        "misfire_grace_time": 60 * 60,
        "coalesce": True,
        "max_instances": 1,
    },
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    engine = create_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.mal_client = MALClient(settings)
    app.state.cache = CacheService(settings.redis_url)
    app.state.expiry_policy = expiry_policy_from_settings(settings)
    app.state.generation_locks = GenerationLocks()

    await init_db(engine)

    # Expired batches and share links - top of every hour
    scheduler.add_job(
        cleanup_expired,
        CronTrigger(minute=0),
        args=[app.state.session_factory],
        id="expired_cache_cleanup",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started - expired cache cleanup hourly, cooldown policy '{settings.cooldown_policy}'")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    scheduler.shutdown()
    await app.state.mal_client.close()
    await app.state.cache.close()
    await engine.dispose()
    logger.info("Shutdown complete")


async def recommendation_error_handler(request: Request, exc: RecommendationError) -> JSONResponse:
    """Typed failures become JSON with a machine-readable reason for the frontend."""
    status_code = ERROR_STATUS.get(type(exc), 400)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "reason": exc.reason},
    )


app = FastAPI(
    title=settings.app_name,
    description="Anime and manga recommendations from MyAnimeList lists",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(RecommendationError, recommendation_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],  # Allow frontend to read correlation ID
)
app.add_middleware(CorrelationIDMiddleware)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/health/db")
async def db_status(db: AsyncSession = Depends(get_db)):
    """Check database connectivity, cache occupancy and the next cleanup run."""
    try:
        await db.execute(text("SELECT 1"))
        cache_stats = await RecommendationCacheService(db).get_cache_stats()
        job = scheduler.get_job("expired_cache_cleanup")
        next_cleanup = job.next_run_time.isoformat() if job and job.next_run_time else None
        return {"status": "healthy", **cache_stats, "next_cleanup": next_cleanup}
    except Exception as e:
        logger.error(f"Health check DB error: {e}")
        return {"status": "error", "error": "Database health check failed"}


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
