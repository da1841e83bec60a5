"""
Test doubles shared across test modules.
"""
from datetime import datetime, timedelta

from orderhub.services.transport import DeliveryOutcome

CUSTOMER_ID = "11111111-1111-1111-1111-111111111111"
ORDER_ID = "22222222-2222-2222-2222-222222222222"
WEBHOOK_URL = "https://hooks.example.com/orderhub"


class Clock:
    """Settable clock; calling it returns the current fake time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


def ok(status_code: int = 200) -> DeliveryOutcome:
    return DeliveryOutcome(success=True, status_code=status_code, response_body="ok", response_time_ms=12)


def http_error(status_code: int) -> DeliveryOutcome:
    return DeliveryOutcome(
        success=False,
        status_code=status_code,
        response_body="upstream error",
        error=f"HTTP {status_code}",
        response_time_ms=15,
    )


def timeout() -> DeliveryOutcome:
    return DeliveryOutcome(success=False, error="timeout", response_time_ms=30000)


class FakeTransport:
    """
    Scripted stand-in for WebhookTransport.

    Each send() pops the next outcome; the last one repeats once the script
    runs out. Every call is recorded as (url, payload, signature).
    """

    def __init__(self, *outcomes: DeliveryOutcome):
        self.outcomes = list(outcomes) or [ok()]
        self.calls = []

    async def send(self, url, payload, signature):
        self.calls.append((url, payload, signature))
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]
