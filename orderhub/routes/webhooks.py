"""
Webhook administration API routes.

Lets staff trigger callbacks, inspect and retry deliveries, test a
customer's endpoint and rotate its signing secret.
"""
import json
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from orderhub.dependencies.auth import require_admin
from orderhub.dependencies.rate_limit import check_rate_limit
from orderhub.dependencies.services import get_rate_limiter, get_retry_sweeper, get_webhook_service
from orderhub.exceptions import (
    CallbacksDisabledError,
    CustomerNotFoundError,
    DeliveryNotFoundError,
    InvalidWebhookUrlError,
    OrderNotFoundError,
    WebhookError,
)
from orderhub.models.webhook import DeliveryStatus, WebhookDelivery, WebhookEvent
from orderhub.services.rate_limiter import RateLimiter
from orderhub.services.retry_sweeper import RetrySweeper
from orderhub.services.transport import DeliveryOutcome
from orderhub.services.webhook_service import WebhookService


router = APIRouter(
    prefix="/api/webhooks",
    tags=["webhooks"],
    dependencies=[Depends(require_admin)],
)


class TriggerDeliveryRequest(BaseModel):
    """Request model for triggering a delivery."""
    customer_id: str
    order_id: str
    event: WebhookEvent


class DeliveryResponse(BaseModel):
    """Response model for a delivery."""
    id: str
    customer_id: str
    order_id: str | None = None
    event_type: str
    webhook_url: str
    status: str
    attempt_count: int
    max_attempts: int
    next_retry_at: datetime | None = None
    http_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class DeliveryDetailResponse(DeliveryResponse):
    payload: dict[str, Any]
    signature: str


class DeliveryListResponse(BaseModel):
    deliveries: list[DeliveryResponse]
    total: int
    has_more: bool


class DeliveryStatsResponse(BaseModel):
    total_deliveries: int
    success_count: int
    success_rate: float
    status_breakdown: dict[str, int]


class SecretInfoResponse(BaseModel):
    has_secret: bool
    created_at: datetime | None = None


def delivery_to_response(delivery: WebhookDelivery) -> DeliveryResponse:
    """Convert WebhookDelivery model to DeliveryResponse."""
    return DeliveryResponse(
        id=delivery.id,
        customer_id=delivery.customer_id,
        order_id=delivery.order_id,
        event_type=delivery.event_type.value,
        webhook_url=delivery.webhook_url,
        status=delivery.status.value,
        attempt_count=delivery.attempt_count,
        max_attempts=delivery.max_attempts,
        next_retry_at=delivery.next_retry_at,
        http_status=delivery.http_status,
        response_body=delivery.response_body,
        error_message=delivery.error_message,
        created_at=delivery.created_at,
        completed_at=delivery.completed_at,
    )


def to_http_error(exc: WebhookError) -> HTTPException:
    """Map a domain error to an HTTP error."""
    if isinstance(exc, (CustomerNotFoundError, OrderNotFoundError, DeliveryNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (CallbacksDisabledError, InvalidWebhookUrlError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/deliveries", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
async def trigger_delivery(
    request: TriggerDeliveryRequest,
    service: WebhookService = Depends(get_webhook_service),
):
    """
    Manually trigger a result callback for an order.

    The first attempt is made before responding; failures are retried by the sweep.
    """
    try:
        delivery = await service.deliver(request.customer_id, request.order_id, request.event)
    except WebhookError as e:
        raise to_http_error(e) from e
    return delivery_to_response(delivery)


@router.get("/deliveries", response_model=DeliveryListResponse)
async def list_deliveries(
    customer_id: str | None = None,
    delivery_status: DeliveryStatus | None = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: WebhookService = Depends(get_webhook_service),
):
    """List deliveries, newest first. Use status=abandoned for the operator queue."""
    deliveries, total = await service.list_deliveries(customer_id, delivery_status, limit, offset)
    return DeliveryListResponse(
        deliveries=[delivery_to_response(d) for d in deliveries],
        total=total,
        has_more=offset + limit < total,
    )


@router.get("/deliveries/{delivery_id}", response_model=DeliveryDetailResponse)
async def get_delivery(
    delivery_id: str,
    service: WebhookService = Depends(get_webhook_service),
):
    """Get a delivery including the exact payload that was signed."""
    try:
        delivery = await service.get_delivery(delivery_id)
    except WebhookError as e:
        raise to_http_error(e) from e
    return DeliveryDetailResponse(
        **delivery_to_response(delivery).model_dump(),
        payload=json.loads(delivery.payload),
        signature=delivery.signature,
    )


@router.post("/deliveries/{delivery_id}/retry", response_model=DeliveryResponse)
async def retry_delivery(
    delivery_id: str,
    service: WebhookService = Depends(get_webhook_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Attempt a delivery now. Deliveries in success or abandoned are returned unchanged."""
    try:
        delivery = await service.get_delivery(delivery_id)
        await check_rate_limit(limiter, "retry", delivery.customer_id)
        delivery = await service.attempt(delivery_id)
    except WebhookError as e:
        raise to_http_error(e) from e
    return delivery_to_response(delivery)


@router.post("/retry-queue/process", response_model=dict)
async def process_retry_queue(sweeper: RetrySweeper = Depends(get_retry_sweeper)):
    """Run one retry sweep pass now."""
    return await sweeper.run_once()


@router.get("/customers/{customer_id}/stats", response_model=DeliveryStatsResponse)
async def get_delivery_stats(
    customer_id: str,
    days: int = Query(7, ge=1, le=90),
    service: WebhookService = Depends(get_webhook_service),
):
    """Delivery counts and success rate over the last `days` days."""
    return DeliveryStatsResponse(**await service.delivery_stats(customer_id, days))


@router.post("/customers/{customer_id}/test", response_model=DeliveryOutcome)
async def test_endpoint(
    customer_id: str,
    service: WebhookService = Depends(get_webhook_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Send a signed test payload to the customer's endpoint. Nothing is recorded."""
    await check_rate_limit(limiter, "test", customer_id)
    try:
        return await service.test_endpoint(customer_id)
    except WebhookError as e:
        raise to_http_error(e) from e


@router.get("/customers/{customer_id}/secret", response_model=SecretInfoResponse)
async def get_secret_info(
    customer_id: str,
    service: WebhookService = Depends(get_webhook_service),
):
    """Whether the customer has a signing secret, and since when."""
    try:
        return SecretInfoResponse(**await service.secret_info(customer_id))
    except WebhookError as e:
        raise to_http_error(e) from e


@router.post("/customers/{customer_id}/secret/regenerate", response_model=dict)
async def regenerate_secret(
    customer_id: str,
    service: WebhookService = Depends(get_webhook_service),
):
    """
    Replace the customer's signing secret.

    Callbacks signed with the old secret will no longer verify on the customer side.
    """
    try:
        await service.regenerate_secret(customer_id)
    except WebhookError as e:
        raise to_http_error(e) from e
    return {"message": "Webhook secret regenerated successfully"}
