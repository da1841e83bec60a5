"""
Webhook models.

WebhookSecret holds the per-customer signing key; WebhookDelivery tracks one
outbound result callback across all of its HTTP attempts.
"""
import enum
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, Text, Index, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from orderhub.models.base import Base, TimestampMixin, new_id


class WebhookEvent(str, enum.Enum):
    """Result callback event type; the value is the wire event name."""
    COMPLETED = "order.completed"
    FAILED = "order.failed"
    STATUS_CHANGED = "order.status_changed"


class DeliveryStatus(str, enum.Enum):
    """Delivery state machine: pending -> {success | retrying} -> {success | abandoned}."""
    PENDING = "pending"
    SUCCESS = "success"
    RETRYING = "retrying"
    ABANDONED = "abandoned"


ACTIVE_STATUSES = (DeliveryStatus.PENDING, DeliveryStatus.RETRYING)
TERMINAL_STATUSES = (DeliveryStatus.SUCCESS, DeliveryStatus.ABANDONED)


class WebhookSecret(Base, TimestampMixin):
    """
    Signing secret for a customer's result callbacks.

    Exactly one per customer; the unique constraint on customer_id is what
    resolves concurrent first-use.
    """
    __tablename__ = "webhook_secrets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)

    def __repr__(self):
        # never render the secret itself
        return f"<WebhookSecret(id={self.id}, customer_id={self.customer_id})>"


class WebhookDelivery(Base, TimestampMixin):
    """
    Webhook delivery tracking.

    payload and signature are written once at creation; every attempt resends
    exactly these bytes. Rows are never deleted.
    """
    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_status_next_retry", "status", "next_retry_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    order_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    event_type: Mapped[WebhookEvent] = mapped_column(
        SQLEnum(WebhookEvent, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    webhook_url: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    signature: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DeliveryStatus.PENDING
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    http_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    claimed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return (
            f"<WebhookDelivery(id={self.id}, customer_id={self.customer_id}, "
            f"status={self.status}, attempts={self.attempt_count}/{self.max_attempts})>"
        )
