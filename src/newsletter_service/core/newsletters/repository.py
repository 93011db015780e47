"""
Newsletter Issue Repository
"""

from typing import Any, Dict, Optional
from uuid import UUID

from ..database.adapter import DatabaseAdapter, Transaction
from .models import NewsletterIssue


def _row_to_issue(row: Dict[str, Any]) -> NewsletterIssue:
    return NewsletterIssue(
        id=row["id"],
        title=row["title"],
        html_body=row["html_body"],
        text_body=row["text_body"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


class IssueRepository:
    """Reads and writes newsletter issues."""

    def __init__(self, db: DatabaseAdapter):
        self._db = db

    async def insert(self, tx: Transaction, issue: NewsletterIssue) -> None:
        """Insert an issue within the caller's transaction."""
        await tx.execute(
            """
            INSERT INTO newsletter_issues (id, title, html_body, text_body, created_by, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            issue.id,
            issue.title,
            issue.html_body,
            issue.text_body,
            issue.created_by,
            issue.created_at
        )

    async def get(self, issue_id: UUID) -> Optional[NewsletterIssue]:
        row = await self._db.fetchrow(
            """
            SELECT id, title, html_body, text_body, created_by, created_at
            FROM newsletter_issues
            WHERE id = $1
            """,
            issue_id
        )
        return _row_to_issue(row) if row else None

    async def count(self) -> int:
        return int(await self._db.fetchval("SELECT COUNT(*) FROM newsletter_issues") or 0)
