"""
Per-customer webhook signing secrets.

Secrets are created lazily on first use and only leave this module on the
signing path. Concurrent first use is settled by the unique constraint on
webhook_secrets.customer_id: the losing writer re-reads the winner's secret.
"""
import secrets
from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.models.webhook import WebhookSecret

logger = structlog.get_logger()

SECRET_BYTES = 32


def generate_secret() -> str:
    """256 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(SECRET_BYTES)


class SecretStore:
    """Service for reading and rotating customer webhook secrets."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _get(self, db: AsyncSession, customer_id: str) -> WebhookSecret | None:
        stmt = select(WebhookSecret).where(WebhookSecret.customer_id == customer_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_secret(self, customer_id: str) -> str:
        """
        Get the customer's secret, creating it on first use.

        Args:
            customer_id: Customer UUID

        Returns:
            The secret every callback for this customer is signed with
        """
        async with self.session_factory() as db:
            existing = await self._get(db, customer_id)
            if existing:
                return existing.secret

            secret = generate_secret()
            db.add(WebhookSecret(customer_id=customer_id, secret=secret))
            try:
                await db.commit()
            except IntegrityError:
                # Another writer created it first; use theirs
                await db.rollback()
                winner = await self._get(db, customer_id)
                if winner is None:
                    raise
                return winner.secret

            logger.info("webhook_secret_created", customer_id=customer_id)
            return secret

    async def regenerate(self, customer_id: str) -> str:
        """
        Replace the customer's secret.

        Signatures produced with the old secret stop verifying for the customer.
        """
        async with self.session_factory() as db:
            await db.execute(delete(WebhookSecret).where(WebhookSecret.customer_id == customer_id))
            new_secret = generate_secret()
            db.add(WebhookSecret(customer_id=customer_id, secret=new_secret))
            await db.commit()

        logger.info("webhook_secret_regenerated", customer_id=customer_id)
        return new_secret

    async def secret_info(self, customer_id: str) -> dict:
        """Whether a secret exists and when it was created; never the secret."""
        async with self.session_factory() as db:
            record = await self._get(db, customer_id)

        created_at: datetime | None = record.created_at if record else None
        return {"has_secret": record is not None, "created_at": created_at}
