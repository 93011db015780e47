"""
Newsletter Issue API

POST /admin/newsletters is idempotent: the issue, its delivery tasks and
the saved response are written in one transaction keyed by
(operator, idempotency key). Retransmissions replay the saved response.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request, Response, status
from pydantic import Field

from ...core.database.adapter import DATABASE_ERRORS, Transaction
from ...core.idempotency.models import IdempotencyKey, SavedResponse, compute_request_hash
from ...core.idempotency.store import IdempotencyStore
from ...core.newsletters.models import IssueContent, NewsletterIssue
from ...core.newsletters.repository import IssueRepository
from ...core.newsletters.subscribers import SubscriberDirectory
from ...core.observability import create_span, record_counter
from ...core.operator import Operator
from ...core.outbox.queue import TaskQueue
from ...core.outbox.writer import OutboxWriter
from ..dependencies import (
    get_idempotency_store,
    get_issue_repository,
    get_outbox_writer,
    get_subscriber_directory,
    get_task_queue,
)
from ..shared.exceptions import DatabaseError, NotFoundError
from ..shared.middleware import get_request_trace_id, require_operator
from ..shared.responses import ErrorResponse, ListResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/newsletters", tags=["newsletters"])


class PublishIssueRequest(IssueContent):
    """Issue content plus the client's idempotency key."""

    idempotency_key: Optional[str] = Field(default=None, max_length=200)


def _issue_payload(issue: NewsletterIssue) -> dict:
    return {
        "issue_id": str(issue.id),
        "title": issue.title,
        "created_by": issue.created_by,
        "created_at": issue.created_at.isoformat(),
    }


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def publish_issue(
    request: Request,
    body: PublishIssueRequest,
    idempotency_key_header: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    operator: Operator = Depends(require_operator),
    store: IdempotencyStore = Depends(get_idempotency_store),
    subscribers: SubscriberDirectory = Depends(get_subscriber_directory),
    writer: OutboxWriter = Depends(get_outbox_writer),
) -> Response:
    """
    Publish a newsletter issue to every confirmed subscriber.

    The idempotency key comes from the body or the Idempotency-Key header.
    Returns 201 with the issue id and the number of delivery tasks queued.
    """
    key = IdempotencyKey.parse(
        body.idempotency_key if body.idempotency_key is not None else idempotency_key_header
    )
    content = IssueContent(
        title=body.title,
        html_content=body.html_content,
        text_content=body.text_content,
    )
    request_hash = compute_request_hash(content.model_dump())
    trace_id = get_request_trace_id(request)
    produced: List[SavedResponse] = []

    async def handler(tx: Transaction) -> SavedResponse:
        emails = await subscribers.list_confirmed(tx)
        issue = NewsletterIssue.from_content(content, created_by=operator.id)
        task_count = await writer.enqueue_issue(tx, issue, emails)
        envelope = SuccessResponse.create(
            data={"issue_id": str(issue.id), "delivery_tasks": task_count},
            trace_id=trace_id,
        )
        response = SavedResponse(
            status_code=status.HTTP_201_CREATED,
            headers={"content-type": "application/json"},
            body=envelope.model_dump_json().encode("utf-8"),
        )
        produced.append(response)
        return response

    try:
        with create_span("newsletter.publish", {"user_id": operator.id, "idempotency_key": key.value}):
            saved = await store.execute_idempotent(operator.id, key, request_hash, handler)
    except DATABASE_ERRORS as e:
        logger.error(
            "Publishing newsletter issue failed: %s", e,
            exc_info=True,
            extra={"trace_id": trace_id, "user_id": operator.id}
        )
        raise DatabaseError(trace_id=trace_id) from e

    # A replay, including one after losing a same-key race, returns the stored response instead
    if produced and saved is produced[-1]:
        record_counter("newsletter_issues_created_total")
        logger.info(
            "Published newsletter issue for key %s", key.value,
            extra={"trace_id": trace_id, "user_id": operator.id}
        )

    return Response(content=saved.body, status_code=saved.status_code, headers=saved.headers)


@router.get("/{issue_id}", responses={404: {"model": ErrorResponse}})
async def get_issue(
    request: Request,
    issue_id: UUID,
    operator: Operator = Depends(require_operator),
    issues: IssueRepository = Depends(get_issue_repository),
    queue: TaskQueue = Depends(get_task_queue),
):
    """Issue metadata with per-status delivery counts."""
    issue = await issues.get(issue_id)
    if issue is None:
        raise NotFoundError("Newsletter issue", str(issue_id))

    data = _issue_payload(issue)
    data["deliveries"] = await queue.get_stats(issue_id)
    return SuccessResponse.create(data=data, trace_id=get_request_trace_id(request))


@router.get("/{issue_id}/deliveries", responses={404: {"model": ErrorResponse}})
async def list_issue_deliveries(
    request: Request,
    issue_id: UUID,
    operator: Operator = Depends(require_operator),
    issues: IssueRepository = Depends(get_issue_repository),
    queue: TaskQueue = Depends(get_task_queue),
):
    """Every delivery task of one issue."""
    if await issues.get(issue_id) is None:
        raise NotFoundError("Newsletter issue", str(issue_id))

    tasks = await queue.list_tasks_for_issue(issue_id)
    return ListResponse.create(
        data=[task.to_dict() for task in tasks],
        total=len(tasks),
        limit=len(tasks),
        trace_id=get_request_trace_id(request),
    )
