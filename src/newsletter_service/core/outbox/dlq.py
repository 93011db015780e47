"""
Poisoned Delivery Management

Tasks in `failed` are the delivery dead-letter queue: they exhausted
their attempts or hit a permanent error and are never picked up again
unless an operator requeues them.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel

from ..database.adapter import DatabaseAdapter
from .models import DeliveryStatus

logger = logging.getLogger(__name__)


class PoisonedDelivery(BaseModel):
    """A delivery task that ended in failed."""

    id: UUID
    newsletter_issue_id: UUID
    subscriber_email: str
    attempts: int
    last_error: Optional[str]
    created_at: datetime
    failed_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


POISONED_COLUMNS = """
    id, newsletter_issue_id, subscriber_email, attempts, last_error,
    created_at, completed_at AS failed_at
"""


class DLQManager:
    """
    Queries and requeues poisoned deliveries.

    Usage:
        dlq = DLQManager(db)
        entries = await dlq.get_entries(limit=50)
        await dlq.requeue(entries[0].id, operator_id="ops")
    """

    def __init__(self, db: DatabaseAdapter):
        self._db = db

    async def get_entries(
        self,
        limit: int = 100,
        offset: int = 0,
        issue_id: Optional[UUID] = None
    ) -> List[PoisonedDelivery]:
        if issue_id is not None:
            rows = await self._db.fetch(
                f"""
                SELECT {POISONED_COLUMNS}
                FROM delivery_tasks
                WHERE status = $1 AND newsletter_issue_id = $2
                ORDER BY completed_at DESC, id
                LIMIT $3 OFFSET $4
                """,
                DeliveryStatus.FAILED.value, issue_id, limit, offset
            )
        else:
            rows = await self._db.fetch(
                f"""
                SELECT {POISONED_COLUMNS}
                FROM delivery_tasks
                WHERE status = $1
                ORDER BY completed_at DESC, id
                LIMIT $2 OFFSET $3
                """,
                DeliveryStatus.FAILED.value, limit, offset
            )

        return [PoisonedDelivery.model_validate(row) for row in rows]

    async def get_count(self, issue_id: Optional[UUID] = None) -> int:
        if issue_id is not None:
            count = await self._db.fetchval(
                "SELECT COUNT(*) FROM delivery_tasks WHERE status = $1 AND newsletter_issue_id = $2",
                DeliveryStatus.FAILED.value, issue_id
            )
        else:
            count = await self._db.fetchval(
                "SELECT COUNT(*) FROM delivery_tasks WHERE status = $1",
                DeliveryStatus.FAILED.value
            )
        return int(count or 0)

    async def requeue(self, task_id: UUID, operator_id: Optional[str] = None) -> bool:
        """
        Return a failed task to pending with its attempts reset.

        Returns:
            True if the task was failed and is now pending
        """
        now = datetime.now(timezone.utc)
        rows = await self._db.fetch(
            """
            UPDATE delivery_tasks
            SET status = $1, attempts = 0, next_attempt_at = $2, updated_at = $2,
                completed_at = NULL, claim_token = NULL, claimed_by = NULL, claimed_at = NULL
            WHERE id = $3 AND status = $4
            RETURNING id
            """,
            DeliveryStatus.PENDING.value,
            now,
            task_id,
            DeliveryStatus.FAILED.value
        )

        if rows:
            logger.info(
                "Requeued poisoned delivery %s", task_id,
                extra={"task_id": str(task_id), "operator_id": operator_id}
            )
        return bool(rows)

    async def get_summary(self) -> Dict[str, Any]:
        """Failed-task counts grouped by last error."""
        rows = await self._db.fetch(
            """
            SELECT last_error, COUNT(*) AS count
            FROM delivery_tasks
            WHERE status = $1
            GROUP BY last_error
            ORDER BY count DESC
            LIMIT 20
            """,
            DeliveryStatus.FAILED.value
        )
        by_error = [{"error": row["last_error"], "count": int(row["count"])} for row in rows]
        return {
            "total": await self.get_count(),
            "by_error": by_error,
        }
