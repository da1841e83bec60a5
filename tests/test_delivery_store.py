"""
Tests for delivery record persistence.
Covers: claim/lease semantics, conditional result writes, due selection,
listing and stats.
"""
from datetime import timedelta

from orderhub.models.base import new_id, utcnow
from orderhub.models.webhook import DeliveryStatus, WebhookDelivery, WebhookEvent
from orderhub.services.delivery_store import DeliveryStore


def _make_delivery(**overrides):
    defaults = {
        "id": new_id(),
        "customer_id": "cust-1",
        "order_id": "order-1",
        "event_type": WebhookEvent.COMPLETED,
        "webhook_url": "https://hooks.example.com/orderhub",
        "payload": '{"event":"order.completed"}',
        "signature": "0" * 64,
        "status": DeliveryStatus.PENDING,
        "attempt_count": 0,
        "max_attempts": 20,
    }
    defaults.update(overrides)
    return WebhookDelivery(**defaults)


class TestCreateAndGet:
    async def test_round_trip(self, session_factory):
        store = DeliveryStore(session_factory)
        created = await store.create(_make_delivery())
        loaded = await store.get(created.id)
        assert loaded.payload == created.payload
        assert loaded.status is DeliveryStatus.PENDING
        assert loaded.event_type is WebhookEvent.COMPLETED
        assert loaded.created_at is not None

    async def test_missing(self, session_factory):
        assert await DeliveryStore(session_factory).get("nope") is None


class TestClaim:
    async def test_claim_then_second_claim_fails(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery())
        now = utcnow()

        token = await store.claim(delivery, lease_seconds=60, now=now)
        assert token is not None
        assert await store.claim(delivery, lease_seconds=60, now=now) is None

    async def test_expired_lease_can_be_reclaimed(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery())
        now = utcnow()

        first = await store.claim(delivery, lease_seconds=60, now=now)
        second = await store.claim(delivery, lease_seconds=60, now=now + timedelta(seconds=61))
        assert second is not None and second != first

    async def test_terminal_record_cannot_be_claimed(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery(status=DeliveryStatus.SUCCESS))
        assert await store.claim(delivery, lease_seconds=60) is None

    async def test_stale_attempt_count_cannot_claim(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery())
        token = await store.claim(delivery, lease_seconds=60)
        await store.record_attempt(delivery.id, token, attempt_count=1, status=DeliveryStatus.RETRYING)

        # delivery still carries attempt_count=0 from before the write
        assert await store.claim(delivery, lease_seconds=60) is None


class TestRecordAttempt:
    async def test_writes_and_releases_claim(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery())
        token = await store.claim(delivery, lease_seconds=60)

        written = await store.record_attempt(
            delivery.id,
            token,
            attempt_count=1,
            status=DeliveryStatus.SUCCESS,
            http_status=200,
        )

        assert written is True
        loaded = await store.get(delivery.id)
        assert loaded.status is DeliveryStatus.SUCCESS
        assert loaded.attempt_count == 1
        assert loaded.http_status == 200
        assert loaded.claim_token is None
        assert loaded.claimed_until is None

    async def test_wrong_token_is_rejected(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery())
        await store.claim(delivery, lease_seconds=60)

        written = await store.record_attempt(delivery.id, "not-the-token", attempt_count=1, status=DeliveryStatus.SUCCESS)

        assert written is False
        assert (await store.get(delivery.id)).attempt_count == 0

    async def test_terminal_record_is_never_rewritten(self, session_factory):
        store = DeliveryStore(session_factory)
        delivery = await store.create(_make_delivery())
        token = await store.claim(delivery, lease_seconds=60)
        await store.record_attempt(delivery.id, token, attempt_count=1, status=DeliveryStatus.ABANDONED)

        assert await store.record_attempt(delivery.id, token, attempt_count=2, status=DeliveryStatus.SUCCESS) is False
        assert (await store.get(delivery.id)).status is DeliveryStatus.ABANDONED


class TestDueDeliveryIds:
    async def test_selects_due_retries_only(self, session_factory):
        store = DeliveryStore(session_factory)
        now = utcnow()
        due = await store.create(_make_delivery(status=DeliveryStatus.RETRYING, next_retry_at=now - timedelta(seconds=1)))
        await store.create(_make_delivery(status=DeliveryStatus.RETRYING, next_retry_at=now + timedelta(seconds=30)))
        await store.create(_make_delivery(status=DeliveryStatus.SUCCESS))
        await store.create(_make_delivery(status=DeliveryStatus.ABANDONED))

        assert await store.due_delivery_ids(limit=50, pending_recovery_seconds=120, now=now) == [due.id]

    async def test_recovers_orphaned_pending_after_grace_period(self, session_factory):
        store = DeliveryStore(session_factory)
        orphan = await store.create(_make_delivery())
        now = utcnow()

        assert await store.due_delivery_ids(limit=50, pending_recovery_seconds=120, now=now) == []
        later = now + timedelta(seconds=121)
        assert await store.due_delivery_ids(limit=50, pending_recovery_seconds=120, now=later) == [orphan.id]

    async def test_skips_claimed_records(self, session_factory):
        store = DeliveryStore(session_factory)
        now = utcnow()
        delivery = await store.create(
            _make_delivery(status=DeliveryStatus.RETRYING, next_retry_at=now - timedelta(seconds=1))
        )
        await store.claim(delivery, lease_seconds=60, now=now)

        assert await store.due_delivery_ids(limit=50, pending_recovery_seconds=120, now=now) == []

    async def test_respects_limit_oldest_first(self, session_factory):
        store = DeliveryStore(session_factory)
        now = utcnow()
        ids = []
        for seconds_ago in (30, 20, 10):
            created = await store.create(
                _make_delivery(status=DeliveryStatus.RETRYING, next_retry_at=now - timedelta(seconds=seconds_ago))
            )
            ids.append(created.id)

        assert await store.due_delivery_ids(limit=2, pending_recovery_seconds=120, now=now) == ids[:2]


class TestListAndStats:
    async def test_filters_and_total(self, session_factory):
        store = DeliveryStore(session_factory)
        for status in (DeliveryStatus.SUCCESS, DeliveryStatus.SUCCESS, DeliveryStatus.ABANDONED):
            await store.create(_make_delivery(status=status))
        await store.create(_make_delivery(customer_id="cust-2"))

        deliveries, total = await store.list_deliveries(customer_id="cust-1", limit=2)
        assert total == 3
        assert len(deliveries) == 2

        abandoned, total = await store.list_deliveries(status=DeliveryStatus.ABANDONED)
        assert total == 1
        assert abandoned[0].status is DeliveryStatus.ABANDONED

    async def test_stats(self, session_factory):
        store = DeliveryStore(session_factory)
        for status in (DeliveryStatus.SUCCESS, DeliveryStatus.SUCCESS, DeliveryStatus.RETRYING):
            await store.create(_make_delivery(status=status))

        stats = await store.delivery_stats("cust-1", days=7)

        assert stats == {
            "total_deliveries": 3,
            "success_count": 2,
            "success_rate": 66.67,
            "status_breakdown": {"success": 2, "retrying": 1},
        }

    async def test_stats_empty(self, session_factory):
        stats = await DeliveryStore(session_factory).delivery_stats("cust-1")
        assert stats["total_deliveries"] == 0
        assert stats["success_rate"] == 0.0
