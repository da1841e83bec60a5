"""
OrderHub - order intake platform

FastAPI application entry point for the webhook administration API.
"""
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as redis
import structlog
from fastapi import FastAPI
from sqlalchemy import text

from orderhub.config import settings
from orderhub.database import AsyncSessionLocal, engine
from orderhub.logging_config import configure_logging
from orderhub.sentry_config import configure_sentry
from orderhub.middleware.logging import LoggingMiddleware
from orderhub.routes.metrics import router as metrics_router
from orderhub.routes.webhooks import router as webhooks_router
from orderhub.services.rate_limiter import RateLimiter
from orderhub.services.retry_sweeper import RetrySweeper
from orderhub.services.webhook_service import build_webhook_service

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared clients and services once per process."""
    http_client = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    redis_client = redis.from_url(settings.REDIS_URL)

    service = build_webhook_service(AsyncSessionLocal, http_client)
    app.state.webhook_service = service
    app.state.retry_sweeper = RetrySweeper(service)
    app.state.rate_limiter = RateLimiter(
        redis_client,
        limit=settings.ADMIN_ACTION_RATE_LIMIT,
        window=settings.ADMIN_ACTION_RATE_WINDOW_SECONDS,
    )
    logger.info("app_started", environment=settings.ENVIRONMENT)

    try:
        yield
    finally:
        await http_client.aclose()
        await redis_client.aclose()
        await engine.dispose()
        logger.info("app_stopped")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Order intake platform: signed result callbacks to customer endpoints",
    lifespan=lifespan,
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Include webhook administration routes
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning("health_check_database_failed", error=str(e))
        database = "unavailable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database
    }
