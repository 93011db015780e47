"""
Delivery Operator API

Operator-visible signal on delivery progress and poisoned tasks.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from ...core.config import ServiceConfig
from ...core.operator import Operator
from ...core.outbox.dlq import DLQManager
from ...core.outbox.models import DeliveryStatus
from ...core.outbox.processor import DeliveryWorkerPool
from ...core.outbox.queue import TaskQueue
from ..dependencies import get_dlq_manager, get_service_config, get_task_queue, get_worker_pool
from ..shared.error_codes import ErrorCode
from ..shared.exceptions import ConflictError, NotFoundError
from ..shared.middleware import get_request_trace_id, require_operator
from ..shared.responses import ErrorResponse, ListResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/deliveries", tags=["deliveries"])


@router.get("/stats")
async def delivery_stats(
    request: Request,
    operator: Operator = Depends(require_operator),
    queue: TaskQueue = Depends(get_task_queue),
    dlq: DLQManager = Depends(get_dlq_manager),
    pool: Optional[DeliveryWorkerPool] = Depends(get_worker_pool),
):
    """Task counts per status, poisoned-task summary and worker state."""
    data = {
        "tasks": await queue.get_stats(),
        "poisoned": await dlq.get_summary(),
        "workers": pool.status() if pool else {"running": False, "workers": 0, "started_at": None},
    }
    return SuccessResponse.create(data=data, trace_id=get_request_trace_id(request))


@router.get("/poisoned")
async def list_poisoned(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    issue_id: Optional[UUID] = None,
    operator: Operator = Depends(require_operator),
    dlq: DLQManager = Depends(get_dlq_manager),
):
    """List delivery tasks that ended in failed."""
    entries = await dlq.get_entries(limit=limit, offset=offset, issue_id=issue_id)
    total = await dlq.get_count(issue_id)
    return ListResponse.create(
        data=[entry.to_dict() for entry in entries],
        total=total,
        limit=limit,
        offset=offset,
        trace_id=get_request_trace_id(request),
    )


@router.post(
    "/{task_id}/requeue",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def requeue_task(
    request: Request,
    task_id: UUID,
    operator: Operator = Depends(require_operator),
    queue: TaskQueue = Depends(get_task_queue),
    dlq: DLQManager = Depends(get_dlq_manager),
):
    """Return a poisoned task to pending with its attempts reset."""
    if not await dlq.requeue(task_id, operator_id=operator.id):
        task = await queue.get_task(task_id)
        if task is None:
            raise NotFoundError("Delivery task", str(task_id))
        raise ConflictError(
            f"Delivery task '{task_id}' is {task.status.value}, only {DeliveryStatus.FAILED.value} tasks can be requeued",
            code=ErrorCode.DELIVERY_NOT_POISONED,
        )

    return SuccessResponse.create(
        data={"task_id": str(task_id), "status": DeliveryStatus.PENDING.value},
        trace_id=get_request_trace_id(request),
    )


@router.post("/release-stale")
async def release_stale(
    request: Request,
    operator: Operator = Depends(require_operator),
    queue: TaskQueue = Depends(get_task_queue),
    config: ServiceConfig = Depends(get_service_config),
):
    """Run the lease-expiry sweep now."""
    released = await queue.release_stale_claims(config.DELIVERY_LEASE_SECONDS)
    logger.info("Operator %s released %d stale claims", operator.id, released)
    return SuccessResponse.create(
        data={"released": released, "lease_seconds": config.DELIVERY_LEASE_SECONDS},
        trace_id=get_request_trace_id(request),
    )
