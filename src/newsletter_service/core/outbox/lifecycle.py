"""
Delivery Worker Lifecycle

Builds the worker pool from configuration and ties it to an
application lifespan.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from ..config import ServiceConfig
from ..database.adapter import DatabaseAdapter
from ..email.client import MailTransport
from ..newsletters.repository import IssueRepository
from .backoff import RetryPolicy
from .processor import DeliveryWorkerPool
from .queue import TaskQueue

logger = logging.getLogger(__name__)


def build_retry_policy(config: ServiceConfig) -> RetryPolicy:
    return RetryPolicy(
        base_delay_seconds=config.DELIVERY_BASE_DELAY,
        max_delay_seconds=config.DELIVERY_MAX_DELAY,
        max_attempts=config.DELIVERY_MAX_ATTEMPTS,
        jitter_ratio=config.DELIVERY_JITTER_RATIO,
    )


def build_worker_pool(
    db: DatabaseAdapter,
    transport: MailTransport,
    config: ServiceConfig,
) -> DeliveryWorkerPool:
    """Wire a DeliveryWorkerPool from configuration."""
    return DeliveryWorkerPool(
        TaskQueue(db),
        IssueRepository(db),
        transport,
        workers=config.DELIVERY_WORKERS,
        policy=build_retry_policy(config),
        batch_size=config.DELIVERY_BATCH_SIZE,
        idle_interval=config.DELIVERY_IDLE_INTERVAL,
        error_interval=config.DELIVERY_ERROR_INTERVAL,
        send_timeout=config.EMAIL_TIMEOUT_SECONDS,
        lease_seconds=config.DELIVERY_LEASE_SECONDS,
        sweep_interval=config.DELIVERY_SWEEP_INTERVAL,
    )


@asynccontextmanager
async def delivery_lifespan(
    db: DatabaseAdapter,
    transport: MailTransport,
    config: ServiceConfig,
) -> AsyncIterator[Optional[DeliveryWorkerPool]]:
    """
    Run in-process delivery workers for the duration of the block.

    Usage in FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with delivery_lifespan(db, transport, config) as pool:
                app.state.worker_pool = pool
                yield

    Yields None when DELIVERY_ENABLED=false, e.g. when workers run as a
    separate newsletter-worker process.
    """
    if not config.DELIVERY_ENABLED:
        logger.info("In-process delivery workers disabled: DELIVERY_ENABLED=false")
        yield None
        return

    pool = build_worker_pool(db, transport, config)
    logger.info("Starting delivery workers...")
    await pool.start()
    try:
        yield pool
    finally:
        logger.info("Stopping delivery workers...")
        await pool.stop(grace_seconds=config.DELIVERY_SHUTDOWN_GRACE)
