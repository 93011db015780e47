"""
Outbox Models

Delivery tasks: one per (issue, subscriber), written in the same
transaction as the issue itself.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class DeliveryStatus(str, Enum):
    """Status of a delivery task."""
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"  # Poisoned: exhausted retries or permanent error


class DeliveryTask(BaseModel):
    """A row in the delivery_tasks table."""

    id: UUID = Field(default_factory=uuid4)
    newsletter_issue_id: UUID
    subscriber_email: str

    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    next_attempt_at: datetime = Field(default_factory=_utcnow)

    claim_token: Optional[UUID] = None
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"claim_token"})


TASK_COLUMNS = """
    id, newsletter_issue_id, subscriber_email, status, attempts, last_error,
    next_attempt_at, claim_token, claimed_by, claimed_at, completed_at,
    created_at, updated_at
"""


def row_to_task(row: Dict[str, Any]) -> DeliveryTask:
    return DeliveryTask(**{key: row[key] for key in DeliveryTask.model_fields if key in row})
