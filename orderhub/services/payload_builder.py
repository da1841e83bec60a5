"""
Result callback payload (schema version WEBHOOK_VERSION).

A payload is built once per delivery and serialized once; retries resend the
stored bytes, so nothing here runs on the retry path.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from orderhub.config import settings
from orderhub.models.base import new_id, utcnow
from orderhub.models.order import Order, OrderItem
from orderhub.models.webhook import WebhookEvent


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class PricingBlock(_WireModel):
    original_total: float
    processed_total: Optional[float] = None
    processing_fee: Optional[float] = None
    notes: Optional[str] = None


class VerificationBlock(_WireModel):
    verified: bool
    actual_price: Optional[float] = None
    availability: Optional[str] = None


class PayloadItem(_WireModel):
    id: str
    original_price: float
    processed_price: Optional[float] = None
    quantity: int
    status: str
    taobao_data: Optional[VerificationBlock] = None


class PayloadMetadata(_WireModel):
    webhook_id: str
    timestamp: str
    version: str
    test: Optional[bool] = None


class CallbackPayload(_WireModel):
    event: WebhookEvent
    order_id: str
    internal_order_id: str
    status: str
    processed_at: str
    pricing: Optional[PricingBlock] = None
    items: list[PayloadItem]
    processing_notes: Optional[str] = None
    metadata: PayloadMetadata

    def serialize(self) -> str:
        """Compact JSON with absent optionals omitted; these are the signed bytes."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


def isoformat(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _money(value: Decimal | float | None) -> float | None:
    return float(value) if value is not None else None


def event_for_order_status(status: str) -> WebhookEvent:
    """Map an order status to the callback event it should trigger."""
    if status == "COMPLETED":
        return WebhookEvent.COMPLETED
    if status == "FAILED":
        return WebhookEvent.FAILED
    return WebhookEvent.STATUS_CHANGED


def _item_verification(item: OrderItem) -> VerificationBlock | None:
    data = item.taobao_data
    if not data:
        return None
    actual_price = data.get("actualPrice", data.get("actual_price"))
    if actual_price is None:
        actual_price = item.processed_price
    return VerificationBlock(
        verified=bool(data.get("verified", True)),
        actual_price=_money(actual_price),
        availability=data.get("availability"),
    )


def _pricing(order: Order) -> PricingBlock:
    fee = None
    if order.original_total is not None and order.processed_total is not None:
        fee = Decimal(str(order.processed_total)) - Decimal(str(order.original_total))
    return PricingBlock(
        original_total=_money(order.original_total),
        processed_total=_money(order.processed_total),
        processing_fee=_money(fee),
        notes=order.processing_notes,
    )


def build_payload(
    order: Order,
    event: WebhookEvent,
    webhook_id: str | None = None,
    now: datetime | None = None,
    version: str | None = None,
) -> CallbackPayload:
    """
    Snapshot an order into a callback payload.

    Args:
        order: Order with items loaded
        event: Event that triggered the callback
        webhook_id: Delivery id carried in metadata (one per delivery, not per attempt)
        now: Clock override
        version: Schema version override

    Returns:
        Frozen CallbackPayload
    """
    now = now or utcnow()
    return CallbackPayload(
        event=event,
        order_id=order.external_order_id,
        internal_order_id=order.id,
        status=order.status,
        # Always carry a timestamp, even before the order is processed
        processed_at=isoformat(order.processed_at or now),
        pricing=_pricing(order),
        items=[
            PayloadItem(
                id=item.product_id,
                original_price=_money(item.original_price),
                processed_price=_money(item.processed_price),
                quantity=item.quantity,
                status=item.status,
                taobao_data=_item_verification(item),
            )
            for item in order.items
        ],
        processing_notes=order.processing_notes,
        metadata=PayloadMetadata(
            webhook_id=webhook_id or new_id(),
            timestamp=isoformat(now),
            version=version or settings.WEBHOOK_VERSION,
        ),
    )


def build_test_payload(now: datetime | None = None, version: str | None = None) -> CallbackPayload:
    """Synthetic, clearly marked payload for endpoint connectivity checks."""
    now = now or utcnow()
    return CallbackPayload(
        event=WebhookEvent.STATUS_CHANGED,
        order_id="test_order_123",
        internal_order_id="test_internal_456",
        status="COMPLETED",
        processed_at=isoformat(now),
        items=[
            PayloadItem(
                id="test_item_1",
                original_price=29.99,
                processed_price=32.5,
                quantity=1,
                status="COMPLETED",
            )
        ],
        processing_notes="This is a test webhook",
        metadata=PayloadMetadata(
            webhook_id=new_id(),
            timestamp=isoformat(now),
            version=version or settings.WEBHOOK_VERSION,
            test=True,
        ),
    )
