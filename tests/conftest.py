"""
Test configuration and fixtures.
Uses a throwaway SQLite file per test. The HTTP transport is scripted, never real.
"""
import random
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from orderhub.database import create_session_factory
from orderhub.models.base import Base, utcnow
# Import all models to register them with Base
from orderhub.models.customer import Customer
from orderhub.models.order import Order, OrderItem
from orderhub.models.webhook import WebhookDelivery, WebhookSecret  # noqa: F401
from orderhub.services.delivery_store import DeliveryStore
from orderhub.services.order_reader import OrderReader
from orderhub.services.secret_store import SecretStore
from orderhub.services.webhook_service import WebhookService

from tests.fakes import CUSTOMER_ID, ORDER_ID, WEBHOOK_URL, Clock


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def customer(session_factory):
    """A customer with callbacks enabled."""
    async with session_factory() as db:
        record = Customer(
            id=CUSTOMER_ID,
            name="Acme Trading",
            email="ops@acme.example.com",
            webhook_url=WEBHOOK_URL,
            webhook_notifications=True,
            is_active=True,
        )
        db.add(record)
        await db.commit()
    return record


@pytest.fixture
async def order(session_factory, customer):
    """A completed order with one verified item."""
    async with session_factory() as db:
        record = Order(
            id=ORDER_ID,
            customer_id=customer.id,
            external_order_id="EXT-1001",
            status="COMPLETED",
            original_total=Decimal("100.00"),
            processed_total=Decimal("108.50"),
            processing_notes="Prices verified",
            processed_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        )
        record.items = [
            OrderItem(
                order_id=ORDER_ID,
                product_id="SKU-1",
                name="Ceramic teapot",
                original_price=Decimal("100.00"),
                processed_price=Decimal("108.50"),
                quantity=1,
                status="COMPLETED",
                taobao_data={"verified": True, "actualPrice": 108.5, "availability": "in_stock"},
            )
        ]
        db.add(record)
        await db.commit()
    return record


@pytest.fixture
def clock():
    return Clock(utcnow())


@pytest.fixture
def make_service(session_factory, clock):
    """Build a WebhookService over the test database with a given transport."""

    def _make(transport, max_attempts=20):
        return WebhookService(
            secret_store=SecretStore(session_factory),
            delivery_store=DeliveryStore(session_factory),
            order_reader=OrderReader(session_factory),
            transport=transport,
            max_attempts=max_attempts,
            claim_lease_seconds=60,
            rng=random.Random(42),
            clock=clock,
        )

    return _make
