"""
Script to create all database tables.

Creates the customer, order and webhook tables from the models.
Run this after starting PostgreSQL with Docker.
"""
import asyncio
from orderhub.database import engine
from orderhub.models.base import Base
# Import all models to register them with Base
from orderhub.models.customer import Customer  # noqa: F401
from orderhub.models.order import Order, OrderItem  # noqa: F401
from orderhub.models.webhook import WebhookDelivery, WebhookSecret  # noqa: F401


async def create_all_tables():
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("All tables created successfully!")


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    print("All tables dropped!")


async def main():
    """Main entry point."""
    print("Creating database tables...")
    await create_all_tables()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
