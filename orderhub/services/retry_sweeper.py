"""
Retry sweep - resubmits due webhook deliveries to the WebhookService.

One pass picks at most batch_size due deliveries and attempts them with
bounded concurrency. A failure on one delivery is logged and never aborts
the rest of the batch.
"""
import asyncio
from datetime import datetime

import structlog

from orderhub.config import settings
from orderhub.models.webhook import DeliveryStatus
from orderhub.routes.metrics import track_sweep_result
from orderhub.services.delivery_store import DeliveryStore
from orderhub.services.webhook_service import WebhookService

logger = structlog.get_logger()


class RetrySweeper:
    """Finds due deliveries and attempts them."""

    def __init__(
        self,
        service: WebhookService,
        delivery_store: DeliveryStore | None = None,
        batch_size: int | None = None,
        concurrency: int | None = None,
        pending_recovery_seconds: int | None = None,
    ):
        self.service = service
        self.deliveries = delivery_store or service.deliveries
        self.batch_size = batch_size or settings.SWEEP_BATCH_SIZE
        self.concurrency = concurrency or settings.SWEEP_CONCURRENCY
        self.pending_recovery_seconds = (
            pending_recovery_seconds
            if pending_recovery_seconds is not None
            else settings.WEBHOOK_PENDING_RECOVERY_SECONDS
        )

    async def _attempt_one(self, delivery_id: str, semaphore: asyncio.Semaphore) -> str:
        async with semaphore:
            try:
                delivery, recorded = await self.service.attempt_with_result(delivery_id)
            except Exception:
                logger.error("webhook_sweep_item_failed", delivery_id=delivery_id, exc_info=True)
                return "error"

        if not recorded:
            return "skipped"
        if delivery.status is DeliveryStatus.SUCCESS:
            return "succeeded"
        if delivery.status is DeliveryStatus.ABANDONED:
            return "abandoned"
        return "retrying"

    async def run_once(self, now: datetime | None = None) -> dict:
        """
        Run a single sweep pass.

        Returns:
            Summary counts: due, succeeded, retrying, abandoned, skipped, errors
        """
        due_ids = await self.deliveries.due_delivery_ids(
            limit=self.batch_size,
            pending_recovery_seconds=self.pending_recovery_seconds,
            now=now,
        )
        summary = {
            "due": len(due_ids),
            "succeeded": 0,
            "retrying": 0,
            "abandoned": 0,
            "skipped": 0,
            "errors": 0,
        }
        if not due_ids:
            return summary

        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(*(self._attempt_one(did, semaphore) for did in due_ids))

        for result in results:
            summary["errors" if result == "error" else result] += 1
            track_sweep_result(result)

        logger.info("webhook_sweep_completed", **summary)
        return summary
