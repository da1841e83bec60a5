"""
Rate limit check for admin actions that call a customer's endpoint.
"""
from fastapi import HTTPException

from orderhub.routes.metrics import track_rate_limit_exceeded
from orderhub.services.rate_limiter import RateLimiter


async def check_rate_limit(limiter: RateLimiter, action: str, customer_id: str):
    """
    Check rate limit for an action against a customer.

    Raises 429 if limit exceeded.
    """
    allowed, retry_after = await limiter.is_allowed(f"{action}:{customer_id}")

    if not allowed:
        track_rate_limit_exceeded(action)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(retry_after)}
        )
