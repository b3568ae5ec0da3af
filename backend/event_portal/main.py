"""
Event Portal API - Main Application Entry Point

An event registration portal built around a seat ledger that never
oversells:
- Row-locked, conditional seat updates; one active registration per user
- Admin capacity edits that can never drop below confirmed demand
- Live seat counters over a server-sent change feed
- Redis caching of listings with invalidation on every seat change
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from event_portal.api.middleware import RequestLoggingMiddleware
from event_portal.api.router import api_router
from event_portal.core.config import get_settings
from event_portal.core.exceptions import register_exception_handlers
from event_portal.core.logging import get_logger, setup_logging
from event_portal.core.metrics import metrics_endpoint
from event_portal.services.cache_service import close_redis, get_cache_stats, get_redis
from event_portal.services.change_feed import get_change_feed

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    Path(settings.MEDIA_ROOT).mkdir(parents=True, exist_ok=True)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event registration portal with an oversell-proof seat ledger",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router)
app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False), name="media")


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": await get_cache_stats(),
        "change_feed_subscribers": get_change_feed().subscriber_count,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
