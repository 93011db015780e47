"""
Delivery Outbox

Issues are fanned out into delivery tasks inside the request
transaction; workers drain the tasks asynchronously.

Usage:
    from newsletter_service.core.outbox import OutboxWriter, TaskQueue, DeliveryWorkerPool

    async with db.transaction() as tx:
        await OutboxWriter(IssueRepository(db)).enqueue_issue(tx, issue, emails)

    pool = DeliveryWorkerPool(TaskQueue(db), IssueRepository(db), transport)
    await pool.start()
"""

from .backoff import RetryAction, RetryDecision, RetryPolicy
from .dlq import DLQManager, PoisonedDelivery
from .lifecycle import build_worker_pool, delivery_lifespan
from .models import DeliveryStatus, DeliveryTask
from .processor import DeliveryWorker, DeliveryWorkerPool
from .queue import TaskQueue
from .writer import OutboxWriter

__all__ = [
    "OutboxWriter",
    "TaskQueue",
    "DeliveryWorker",
    "DeliveryWorkerPool",
    "DeliveryStatus",
    "DeliveryTask",
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "DLQManager",
    "PoisonedDelivery",
    "build_worker_pool",
    "delivery_lifespan",
]
