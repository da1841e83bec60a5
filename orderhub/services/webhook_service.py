"""
Webhook Service

Delivers signed order-result callbacks to customer endpoints and drives each
delivery record through pending -> {success | retrying} -> {success | abandoned}.
"""
import random
from typing import Callable
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.config import settings
from orderhub.exceptions import (
    CallbacksDisabledError,
    CustomerNotFoundError,
    DeliveryNotFoundError,
    InvalidWebhookUrlError,
    OrderNotFoundError,
)
from orderhub.logging_config import get_logger
from orderhub.models.base import new_id, utcnow
from orderhub.models.customer import Customer
from orderhub.models.webhook import DeliveryStatus, WebhookDelivery, WebhookEvent
from orderhub.routes.metrics import (
    track_delivery_abandoned,
    track_delivery_created,
    track_webhook_attempt,
)
from orderhub.sentry_config import capture_message
from orderhub.services import retry_policy
from orderhub.services.delivery_store import DeliveryStore
from orderhub.services.order_reader import OrderReader
from orderhub.services.payload_builder import build_payload, build_test_payload
from orderhub.services.secret_store import SecretStore
from orderhub.services.signing import sign
from orderhub.services.transport import DeliveryOutcome, WebhookTransport


def coerce_event(event: WebhookEvent | str) -> WebhookEvent:
    """Accept either the wire name ("order.completed") or the short name ("completed")."""
    if isinstance(event, WebhookEvent):
        return event
    try:
        return WebhookEvent(event)
    except ValueError:
        return WebhookEvent(f"order.{event}")


def validate_webhook_url(url: str | None) -> None:
    """Raise InvalidWebhookUrlError unless url is an absolute http(s) URL."""
    if not url:
        raise InvalidWebhookUrlError(url, "no URL configured")
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidWebhookUrlError(url, str(e)) from e
    if parsed.scheme not in ("http", "https"):
        raise InvalidWebhookUrlError(url, "scheme must be http or https")
    if not parsed.host:
        raise InvalidWebhookUrlError(url, "missing host")


class WebhookService:
    """
    Delivery orchestrator.

    Collaborators are injected so tests can swap the transport or stores;
    all decisions are made from the persisted record, never from memory.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        delivery_store: DeliveryStore,
        order_reader: OrderReader,
        transport: WebhookTransport,
        max_attempts: int | None = None,
        claim_lease_seconds: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.secrets = secret_store
        self.deliveries = delivery_store
        self.orders = order_reader
        self.transport = transport
        self.max_attempts = max_attempts or settings.WEBHOOK_MAX_ATTEMPTS
        self.claim_lease_seconds = claim_lease_seconds or settings.WEBHOOK_CLAIM_LEASE_SECONDS
        self.rng = rng
        self.clock = clock

    async def _get_customer(self, customer_id: str) -> Customer:
        customer = await self.orders.get_customer(customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    async def deliver(
        self,
        customer_id: str,
        order_id: str,
        event: WebhookEvent | str,
    ) -> WebhookDelivery:
        """
        Create a delivery for an order event and make the first attempt.

        Args:
            customer_id: Customer UUID
            order_id: Internal order UUID
            event: Event that triggered the callback

        Returns:
            The delivery record after its first attempt

        Raises:
            WebhookConfigurationError: customer/order missing, callbacks
                disabled or URL invalid; no record is created
        """
        event = coerce_event(event)
        customer = await self._get_customer(customer_id)
        if not customer.webhook_notifications:
            raise CallbacksDisabledError(customer_id)
        validate_webhook_url(customer.webhook_url)

        order = await self.orders.get_order(order_id)
        if order is None or order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)

        delivery_id = new_id()
        body = build_payload(order, event, webhook_id=delivery_id, now=self.clock()).serialize()
        secret = await self.secrets.get_or_create_secret(customer_id)

        delivery = await self.deliveries.create(
            WebhookDelivery(
                id=delivery_id,
                customer_id=customer_id,
                order_id=order_id,
                event_type=event,
                # Copied now so later URL edits don't redirect in-flight retries
                webhook_url=customer.webhook_url,
                payload=body,
                signature=sign(body, secret),
                status=DeliveryStatus.PENDING,
                attempt_count=0,
                max_attempts=self.max_attempts,
            )
        )
        track_delivery_created(event.value)
        get_logger(
            delivery_id=delivery.id,
            customer_id=customer_id,
            order_id=order_id,
            event_type=event.value,
        ).info("webhook_delivery_created")

        return await self.attempt(delivery.id)

    async def attempt(self, delivery_id: str) -> WebhookDelivery:
        """
        Make one HTTP attempt for a delivery and record the result.

        No-op for deliveries already in success or abandoned, and for
        deliveries another worker is currently attempting.

        Returns:
            The delivery record as persisted after this call
        """
        delivery, _ = await self.attempt_with_result(delivery_id)
        return delivery

    async def attempt_with_result(self, delivery_id: str) -> tuple[WebhookDelivery, bool]:
        """
        Same as attempt(), also reporting whether this call recorded an attempt.

        Returns:
            (delivery, recorded); recorded is False for terminal records and lost claims
        """
        delivery = await self.deliveries.get(delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)

        log = get_logger(
            delivery_id=delivery.id,
            customer_id=delivery.customer_id,
            order_id=delivery.order_id,
            event_type=delivery.event_type.value,
        )

        if delivery.is_terminal:
            log.info("webhook_attempt_skipped", status=delivery.status.value)
            return delivery, False

        token = await self.deliveries.claim(delivery, self.claim_lease_seconds, now=self.clock())
        if token is None:
            log.info("webhook_claim_lost", stage="claim")
            return await self.deliveries.get(delivery_id), False

        outcome = await self.transport.send(delivery.webhook_url, delivery.payload, delivery.signature)
        attempt_count = delivery.attempt_count + 1
        values = self._next_state(delivery, outcome, attempt_count)

        if not await self.deliveries.record_attempt(delivery.id, token, **values):
            log.warning("webhook_claim_lost", stage="record", attempt=attempt_count)
            return await self.deliveries.get(delivery_id), False

        status = values["status"]
        track_webhook_attempt(delivery.event_type.value, status.value, outcome.response_time_ms)
        log = log.bind(attempt=attempt_count, http_status=outcome.status_code)

        if status is DeliveryStatus.SUCCESS:
            log.info("webhook_delivered")
        elif status is DeliveryStatus.RETRYING:
            log.warning(
                "webhook_attempt_failed",
                error=outcome.error,
                next_retry_at=values["next_retry_at"].isoformat(),
            )
        else:
            self._alert_abandoned(log, delivery, outcome, attempt_count)

        return await self.deliveries.get(delivery_id), True

    def _next_state(self, delivery: WebhookDelivery, outcome: DeliveryOutcome, attempt_count: int) -> dict:
        now = self.clock()
        values = {
            "attempt_count": attempt_count,
            "http_status": outcome.status_code,
            "response_body": outcome.response_body,
            "error_message": outcome.error,
        }

        if outcome.success:
            values.update(status=DeliveryStatus.SUCCESS, completed_at=now, next_retry_at=None)
        elif outcome.retryable and retry_policy.should_retry(attempt_count, delivery.max_attempts):
            values.update(
                status=DeliveryStatus.RETRYING,
                completed_at=None,
                # First retry waits ~1s, doubling up to the 60s cap
                next_retry_at=retry_policy.next_retry_at(attempt_count - 1, now=now, rng=self.rng),
            )
        else:
            values.update(status=DeliveryStatus.ABANDONED, completed_at=now, next_retry_at=None)
        return values

    def _alert_abandoned(self, log, delivery: WebhookDelivery, outcome: DeliveryOutcome, attempt_count: int):
        log.error(
            "webhook_delivery_abandoned",
            error=outcome.error,
            max_attempts=delivery.max_attempts,
            retryable=outcome.retryable,
        )
        track_delivery_abandoned(delivery.event_type.value)
        capture_message(
            f"Webhook delivery abandoned after {attempt_count} attempts",
            level="error",
            delivery_id=delivery.id,
            customer_id=delivery.customer_id,
            order_id=delivery.order_id,
        )

    async def test_endpoint(self, customer_id: str) -> DeliveryOutcome:
        """
        Sign and send a synthetic test payload to the customer's endpoint.

        Nothing is persisted except the customer's secret (created if absent).
        """
        customer = await self._get_customer(customer_id)
        validate_webhook_url(customer.webhook_url)

        body = build_test_payload(now=self.clock()).serialize()
        secret = await self.secrets.get_or_create_secret(customer_id)
        outcome = await self.transport.send(customer.webhook_url, body, sign(body, secret))

        get_logger(customer_id=customer_id).info(
            "webhook_test_sent",
            success=outcome.success,
            http_status=outcome.status_code,
            response_time_ms=outcome.response_time_ms,
        )
        return outcome

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery:
        delivery = await self.deliveries.get(delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)
        return delivery

    async def list_deliveries(self, customer_id=None, status=None, limit=20, offset=0):
        return await self.deliveries.list_deliveries(customer_id, status, limit, offset)

    async def delivery_stats(self, customer_id: str, days: int = 7) -> dict:
        return await self.deliveries.delivery_stats(customer_id, days, now=self.clock())

    async def secret_info(self, customer_id: str) -> dict:
        await self._get_customer(customer_id)
        return await self.secrets.secret_info(customer_id)

    async def regenerate_secret(self, customer_id: str) -> None:
        await self._get_customer(customer_id)
        await self.secrets.regenerate(customer_id)


def build_webhook_service(
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient | None = None,
) -> WebhookService:
    """Wire a WebhookService with the default stores and transport."""
    return WebhookService(
        secret_store=SecretStore(session_factory),
        delivery_store=DeliveryStore(session_factory),
        order_reader=OrderReader(session_factory),
        transport=WebhookTransport(client=http_client),
    )
