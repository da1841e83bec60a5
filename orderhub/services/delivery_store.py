"""
Durable store for webhook delivery records.

Every state change after creation goes through a conditional UPDATE so two
workers can never both advance the same record: claim() takes a short lease
on an active record, record_attempt() only writes while that lease is held.
"""
import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderhub.models.base import utcnow
from orderhub.models.webhook import ACTIVE_STATUSES, DeliveryStatus, WebhookDelivery


class DeliveryStore:
    """Persistence for WebhookDelivery rows. Each call uses its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, delivery: WebhookDelivery) -> WebhookDelivery:
        async with self.session_factory() as db:
            db.add(delivery)
            await db.commit()
            await db.refresh(delivery)
            return delivery

    async def get(self, delivery_id: str) -> WebhookDelivery | None:
        async with self.session_factory() as db:
            return await db.get(WebhookDelivery, delivery_id)

    async def claim(
        self,
        delivery: WebhookDelivery,
        lease_seconds: int,
        now: datetime | None = None,
    ) -> str | None:
        """
        Take the attempt lease on an active delivery.

        Succeeds only if the row is still active, has not been attempted since
        it was read, and no unexpired lease exists.

        Returns:
            Claim token, or None if another worker owns or already advanced it
        """
        now = now or utcnow()
        token = str(uuid.uuid4())
        stmt = (
            update(WebhookDelivery)
            .where(
                WebhookDelivery.id == delivery.id,
                WebhookDelivery.status.in_(ACTIVE_STATUSES),
                WebhookDelivery.attempt_count == delivery.attempt_count,
                or_(
                    WebhookDelivery.claimed_until.is_(None),
                    WebhookDelivery.claimed_until <= now,
                ),
            )
            .values(claim_token=token, claimed_until=now + timedelta(seconds=lease_seconds))
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return token if result.rowcount == 1 else None

    async def record_attempt(self, delivery_id: str, token: str, **values) -> bool:
        """
        Write an attempt's result and release the lease.

        Returns:
            False if the lease was lost (the result must be discarded)
        """
        stmt = (
            update(WebhookDelivery)
            .where(
                WebhookDelivery.id == delivery_id,
                WebhookDelivery.claim_token == token,
                WebhookDelivery.status.in_(ACTIVE_STATUSES),
            )
            .values(claim_token=None, claimed_until=None, **values)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount == 1

    async def due_delivery_ids(
        self,
        limit: int,
        pending_recovery_seconds: int,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Ids of deliveries whose next attempt is due.

        Includes scheduled retries and first attempts that were never
        completed (process died between creating and sending).
        """
        now = now or utcnow()
        unclaimed = or_(
            WebhookDelivery.claimed_until.is_(None),
            WebhookDelivery.claimed_until <= now,
        )
        retry_due = and_(
            WebhookDelivery.status == DeliveryStatus.RETRYING,
            WebhookDelivery.next_retry_at <= now,
        )
        orphaned = and_(
            WebhookDelivery.status == DeliveryStatus.PENDING,
            WebhookDelivery.created_at <= now - timedelta(seconds=pending_recovery_seconds),
        )
        stmt = (
            select(WebhookDelivery.id)
            .where(or_(retry_due, orphaned), unclaimed)
            .order_by(func.coalesce(WebhookDelivery.next_retry_at, WebhookDelivery.created_at))
            .limit(limit)
        )
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def list_deliveries(
        self,
        customer_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[WebhookDelivery], int]:
        """
        Page through deliveries, newest first.

        Returns:
            (deliveries, total matching)
        """
        filters = []
        if customer_id:
            filters.append(WebhookDelivery.customer_id == customer_id)
        if status:
            filters.append(WebhookDelivery.status == status)

        stmt = (
            select(WebhookDelivery)
            .where(*filters)
            .order_by(WebhookDelivery.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count()).select_from(WebhookDelivery).where(*filters)

        async with self.session_factory() as db:
            result = await db.execute(stmt)
            deliveries = list(result.scalars().all())
            total = (await db.execute(count_stmt)).scalar_one()
        return deliveries, total

    async def delivery_stats(
        self,
        customer_id: str,
        days: int = 7,
        now: datetime | None = None,
    ) -> dict:
        """Delivery counts by status over the trailing window, plus success rate."""
        since = (now or utcnow()) - timedelta(days=days)
        stmt = (
            select(WebhookDelivery.status, func.count(WebhookDelivery.id))
            .where(
                WebhookDelivery.customer_id == customer_id,
                WebhookDelivery.created_at >= since,
            )
            .group_by(WebhookDelivery.status)
        )
        async with self.session_factory() as db:
            rows = (await db.execute(stmt)).all()

        breakdown = {DeliveryStatus(status).value: count for status, count in rows}
        total = sum(breakdown.values())
        success_count = breakdown.get(DeliveryStatus.SUCCESS.value, 0)
        success_rate = (success_count / total) * 100 if total else 0.0

        return {
            "total_deliveries": total,
            "success_count": success_count,
            "success_rate": round(success_rate, 2),
            "status_breakdown": breakdown,
        }
