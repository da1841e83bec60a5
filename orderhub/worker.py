"""
ARQ background worker for OrderHub webhooks.

Runs result-callback deliveries off the request path and the periodic
retry sweep. Start with: arq orderhub.worker.WorkerSettings
"""
import httpx
import structlog
from arq import cron
from arq.connections import RedisSettings

from orderhub.config import settings
from orderhub.database import create_engine, create_session_factory
from orderhub.exceptions import WebhookConfigurationError
from orderhub.logging_config import configure_logging
from orderhub.sentry_config import capture_exception, configure_sentry
from orderhub.services.retry_sweeper import RetrySweeper
from orderhub.services.webhook_service import build_webhook_service

logger = structlog.get_logger()


async def on_startup(ctx: dict):
    """Build the engine, HTTP client and services shared by all jobs."""
    configure_logging()
    configure_sentry()

    ctx["engine"] = create_engine()
    ctx["http_client"] = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    ctx["webhook_service"] = build_webhook_service(
        create_session_factory(ctx["engine"]),
        ctx["http_client"],
    )
    ctx["retry_sweeper"] = RetrySweeper(ctx["webhook_service"])
    logger.info("worker_started", redis=settings.REDIS_URL)


async def on_shutdown(ctx: dict):
    await ctx["http_client"].aclose()
    await ctx["engine"].dispose()
    logger.info("worker_stopped")


async def deliver_webhook_job(ctx: dict, customer_id: str, order_id: str, event: str) -> dict:
    """
    Create and attempt a delivery for an order event.

    Configuration problems (callbacks off, bad URL, unknown order) are
    logged and dropped; retrying the job would not fix them.
    """
    log = logger.bind(customer_id=customer_id, order_id=order_id, event_type=event)
    try:
        delivery = await ctx["webhook_service"].deliver(customer_id, order_id, event)
    except WebhookConfigurationError as e:
        log.warning("webhook_delivery_rejected", reason=str(e))
        return {"status": "rejected", "reason": str(e)}
    except Exception:
        log.error("webhook_delivery_job_failed", exc_info=True)
        capture_exception()
        raise

    return {"delivery_id": delivery.id, "status": delivery.status.value}


async def retry_delivery_job(ctx: dict, delivery_id: str) -> dict:
    """Attempt a single delivery now (no-op if already terminal)."""
    delivery = await ctx["webhook_service"].attempt(delivery_id)
    return {"delivery_id": delivery.id, "status": delivery.status.value}


async def sweep_webhook_retries(ctx: dict) -> dict:
    """Cron: attempt every delivery whose retry time has come."""
    return await ctx["retry_sweeper"].run_once()


# Register functions for ARQ
ARQ_FUNCTIONS = [
    deliver_webhook_job,
    retry_delivery_job,
]


async def enqueue_delivery(customer_id: str, order_id: str, event: str, redis=None) -> bool:
    """
    Enqueue a result callback for background delivery.

    Called by order processing once an order reaches a terminal status.
    Pass an existing ArqRedis pool to avoid opening a connection per call.
    """
    from arq import create_pool

    pool = redis or await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
    try:
        await pool.enqueue_job("deliver_webhook_job", customer_id, order_id, event)
    except Exception as e:
        logger.error("webhook_enqueue_failed", customer_id=customer_id, order_id=order_id, error=str(e))
        return False
    finally:
        if redis is None:
            await pool.aclose()

    logger.info("webhook_delivery_enqueued", customer_id=customer_id, order_id=order_id, event_type=event)
    return True


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq orderhub.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    job_timeout = 300
    max_tries = 3
    functions = ARQ_FUNCTIONS
    cron_jobs = [
        cron(
            sweep_webhook_retries,
            second=set(range(0, 60, settings.SWEEP_INTERVAL_SECONDS)),
            unique=True,
            run_at_startup=True,
        ),
    ]
    on_startup = on_startup
    on_shutdown = on_shutdown

