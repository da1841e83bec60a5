"""
Retry scheduling for failed webhook deliveries.

Exponential backoff: 1s, 2s, 4s, 8s, 16s, 32s, then 60s for the remaining
attempts, each with up to 10% jitter added on top.
"""
import random
from datetime import datetime, timedelta

from orderhub.models.base import utcnow

MAX_DELAY_SECONDS = 60
JITTER_RATIO = 0.1


def base_delay(attempt_number: int) -> int:
    """Un-jittered delay in seconds for the given attempt number."""
    if attempt_number >= 6:
        return MAX_DELAY_SECONDS
    return min(2 ** max(attempt_number, 0), MAX_DELAY_SECONDS)


def retry_delay(attempt_number: int, rng: random.Random | None = None) -> float:
    """Delay in seconds including jitter (never less than the base delay)."""
    delay = base_delay(attempt_number)
    jitter = (rng or random).random() * JITTER_RATIO * delay
    return delay + jitter


def next_retry_at(
    attempt_number: int,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> datetime:
    """Timestamp at which the next attempt becomes due."""
    now = now or utcnow()
    return now + timedelta(seconds=retry_delay(attempt_number, rng))


def should_retry(attempt_count: int, max_attempts: int) -> bool:
    return attempt_count < max_attempts
