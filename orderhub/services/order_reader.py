"""
Read access to customers and orders for the webhook subsystem.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from orderhub.models.customer import Customer
from orderhub.models.order import Order


class OrderReader:
    """Service for loading the customer and order facts a callback needs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_customer(self, customer_id: str) -> Customer | None:
        """Get customer by ID."""
        async with self.session_factory() as db:
            return await db.get(Customer, customer_id)

    async def get_order(self, order_id: str) -> Order | None:
        """Get order by ID with its items loaded."""
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items))
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
