"""
Service dependencies for FastAPI.

Services are built once in the app lifespan and stored on app.state.
"""
from fastapi import Request

from orderhub.services.rate_limiter import RateLimiter
from orderhub.services.retry_sweeper import RetrySweeper
from orderhub.services.webhook_service import WebhookService


def get_webhook_service(request: Request) -> WebhookService:
    return request.app.state.webhook_service


def get_retry_sweeper(request: Request) -> RetrySweeper:
    return request.app.state.retry_sweeper


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter
