"""
Outbox Writer

Writes a newsletter issue and its delivery tasks within the same
transaction as the idempotency record that admits the request.

If the transaction commits, the full task set exists; if it does not,
nothing exists and the client's retry re-enters the idempotent path.
No mail is sent from here.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List

from ..database.adapter import Transaction
from ..newsletters.models import NewsletterIssue
from ..newsletters.repository import IssueRepository
from .models import DeliveryStatus, DeliveryTask

logger = logging.getLogger(__name__)


def _unique_in_order(emails: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for email in emails:
        normalized = email.strip()
        if not normalized or normalized.lower() in seen:
            continue
        seen.add(normalized.lower())
        result.append(normalized)
    return result


class OutboxWriter:
    """
    Fans an issue out into one pending delivery task per subscriber.

    Usage:
        async with db.transaction() as tx:
            # ... reserve idempotency key ...
            count = await writer.enqueue_issue(tx, issue, emails)
        # Transaction commits: issue and tasks are persisted together
    """

    def __init__(self, issues: IssueRepository):
        self._issues = issues

    async def enqueue_issue(
        self,
        tx: Transaction,
        issue: NewsletterIssue,
        confirmed_subscriber_emails: Iterable[str],
    ) -> int:
        """
        Write the issue row and its delivery tasks.

        Args:
            tx: The caller's open transaction
            issue: The issue to publish
            confirmed_subscriber_emails: Addresses confirmed at enqueue time;
                duplicates (case-insensitive) collapse to a single task

        Returns:
            Number of delivery tasks written
        """
        await self._issues.insert(tx, issue)

        now = datetime.now(timezone.utc)
        tasks = [
            DeliveryTask(
                newsletter_issue_id=issue.id,
                subscriber_email=email,
                status=DeliveryStatus.PENDING,
                attempts=0,
                next_attempt_at=now,
                created_at=now,
                updated_at=now,
            )
            for email in _unique_in_order(confirmed_subscriber_emails)
        ]

        await tx.executemany(
            """
            INSERT INTO delivery_tasks (
                id, newsletter_issue_id, subscriber_email, status, attempts,
                next_attempt_at, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            [
                (
                    task.id,
                    task.newsletter_issue_id,
                    task.subscriber_email,
                    task.status.value,
                    task.attempts,
                    task.next_attempt_at,
                    task.created_at,
                    task.updated_at,
                )
                for task in tasks
            ]
        )

        logger.info(
            "Enqueued issue %s for delivery to %d subscribers",
            issue.id,
            len(tasks),
            extra={"newsletter_issue_id": str(issue.id)}
        )
        return len(tasks)
