"""
Order models (read model).

Orders and their items are written by the order-processing screens; callbacks
snapshot them into a payload at delivery time.
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Text, Integer, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from orderhub.models.base import Base, TimestampMixin, new_id


class Order(Base, TimestampMixin):
    """A customer order received over the intake webhook."""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    external_order_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="PENDING")
    original_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    processed_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    processing_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    customer = relationship("Customer", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at"
    )

    def __repr__(self):
        return f"<Order(id={self.id}, external_id={self.external_order_id}, status={self.status})>"


class OrderItem(Base, TimestampMixin):
    """
    A line item of an order.

    taobao_data holds the facts reported by product verification
    (verified, actualPrice, availability) when an item has been checked.
    """
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    original_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    processed_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="PENDING")
    taobao_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, status={self.status})>"
