"""
Delivery Task Queue

The claiming protocol shared by every worker:

    pending --claim--> processing --mark_done-----> done
                                  --mark_retry----> pending (later)
                                  --mark_poisoned-> failed
    processing --lease expiry--> pending

A claim commits before any mail is sent. Every mark_* call is
conditional on the task still being `processing` under the caller's
claim_token, so a worker whose lease was swept cannot overwrite the
outcome recorded by the worker that re-claimed the task.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from ..database.adapter import DatabaseAdapter
from .models import TASK_COLUMNS, DeliveryStatus, DeliveryTask, row_to_task

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(error: str) -> str:
    return (error or "")[:MAX_ERROR_LENGTH]


class TaskQueue:
    """
    Durable queue of delivery tasks.

    Usage:
        queue = TaskQueue(db)
        tasks = await queue.claim_batch(10, worker_id="worker-1")
        for task in tasks:
            ...
            await queue.mark_done(task)
    """

    def __init__(self, db: DatabaseAdapter):
        self._db = db

    async def claim_batch(self, limit: int, worker_id: str = "worker") -> List[DeliveryTask]:
        """
        Atomically claim up to `limit` due pending tasks.

        PostgreSQL skips rows locked by a concurrent claimer; SQLite holds
        the database write lock for the statement. Either way two workers
        never receive the same task.
        """
        if limit <= 0:
            return []

        now = _utcnow()
        claim_token = uuid4()

        async with self._db.transaction() as tx:
            lock_clause = "FOR UPDATE SKIP LOCKED" if tx.supports_skip_locked else ""
            rows = await tx.fetch(
                f"""
                UPDATE delivery_tasks
                SET status = $1, claim_token = $2, claimed_by = $3,
                    claimed_at = $4, updated_at = $4
                WHERE id IN (
                    SELECT id FROM delivery_tasks
                    WHERE status = $5 AND next_attempt_at <= $4
                    ORDER BY next_attempt_at, created_at
                    LIMIT $6
                    {lock_clause}
                )
                AND status = $5
                RETURNING {TASK_COLUMNS}
                """,
                DeliveryStatus.PROCESSING.value,
                claim_token,
                worker_id,
                now,
                DeliveryStatus.PENDING.value,
                limit
            )

        tasks = sorted((row_to_task(row) for row in rows), key=lambda t: (t.next_attempt_at, t.created_at))
        if tasks:
            logger.debug("%s claimed %d delivery tasks", worker_id, len(tasks))
        return tasks

    async def mark_done(self, task: DeliveryTask) -> bool:
        """Record a successful send. Returns False if the claim was lost."""
        now = _utcnow()
        rows = await self._db.fetch(
            """
            UPDATE delivery_tasks
            SET status = $1, attempts = attempts + 1, last_error = NULL,
                completed_at = $2, updated_at = $2, claim_token = NULL
            WHERE id = $3 AND claim_token = $4 AND status = $5
            RETURNING id
            """,
            DeliveryStatus.DONE.value,
            now,
            task.id,
            task.claim_token,
            DeliveryStatus.PROCESSING.value
        )
        return bool(rows)

    async def mark_retry(self, task: DeliveryTask, error: str, backoff_seconds: float) -> bool:
        """Return the task to pending, due again after backoff_seconds."""
        now = _utcnow()
        rows = await self._db.fetch(
            """
            UPDATE delivery_tasks
            SET status = $1, attempts = attempts + 1, last_error = $2,
                next_attempt_at = $3, updated_at = $4,
                claim_token = NULL, claimed_by = NULL, claimed_at = NULL
            WHERE id = $5 AND claim_token = $6 AND status = $7
            RETURNING id
            """,
            DeliveryStatus.PENDING.value,
            _truncate(error),
            now + timedelta(seconds=max(0.0, backoff_seconds)),
            now,
            task.id,
            task.claim_token,
            DeliveryStatus.PROCESSING.value
        )
        return bool(rows)

    async def mark_poisoned(self, task: DeliveryTask, error: str) -> bool:
        """Move the task to failed. It is never picked up again unless requeued."""
        now = _utcnow()
        rows = await self._db.fetch(
            """
            UPDATE delivery_tasks
            SET status = $1, attempts = attempts + 1, last_error = $2,
                completed_at = $3, updated_at = $3, claim_token = NULL
            WHERE id = $4 AND claim_token = $5 AND status = $6
            RETURNING id
            """,
            DeliveryStatus.FAILED.value,
            _truncate(error),
            now,
            task.id,
            task.claim_token,
            DeliveryStatus.PROCESSING.value
        )
        return bool(rows)

    async def release_stale_claims(self, lease_seconds: float) -> int:
        """
        Return tasks stuck in processing past their lease to pending.

        Covers workers that crashed or were stopped mid-batch. The task
        becomes due immediately; attempts are left unchanged.
        """
        now = _utcnow()
        rows = await self._db.fetch(
            """
            UPDATE delivery_tasks
            SET status = $1, last_error = $2, next_attempt_at = $3, updated_at = $3,
                claim_token = NULL, claimed_by = NULL, claimed_at = NULL
            WHERE status = $4 AND claimed_at < $5
            RETURNING id
            """,
            DeliveryStatus.PENDING.value,
            "claim lease expired",
            now,
            DeliveryStatus.PROCESSING.value,
            now - timedelta(seconds=lease_seconds)
        )
        if rows:
            logger.warning("Released %d stale delivery claims", len(rows))
        return len(rows)

    async def get_task(self, task_id: UUID) -> Optional[DeliveryTask]:
        row = await self._db.fetchrow(
            f"SELECT {TASK_COLUMNS} FROM delivery_tasks WHERE id = $1",
            task_id
        )
        return row_to_task(row) if row else None

    async def list_tasks_for_issue(self, issue_id: UUID) -> List[DeliveryTask]:
        rows = await self._db.fetch(
            f"""
            SELECT {TASK_COLUMNS} FROM delivery_tasks
            WHERE newsletter_issue_id = $1
            ORDER BY subscriber_email
            """,
            issue_id
        )
        return [row_to_task(row) for row in rows]

    async def get_stats(self, issue_id: Optional[UUID] = None) -> Dict[str, int]:
        """Task counts per status, optionally for one issue."""
        if issue_id is None:
            rows = await self._db.fetch(
                "SELECT status, COUNT(*) AS count FROM delivery_tasks GROUP BY status"
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT status, COUNT(*) AS count FROM delivery_tasks
                WHERE newsletter_issue_id = $1
                GROUP BY status
                """,
                issue_id
            )

        stats = {status.value: 0 for status in DeliveryStatus}
        for row in rows:
            stats[row["status"]] = int(row["count"])
        return stats
