"""
Shared Test Fixtures

Every test gets a fresh SQLite database with the schema applied.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

import pytest

from newsletter_service.core.database import DatabaseAdapter, DatabaseConfig, apply_schema
from newsletter_service.core.newsletters import IssueContent, IssueRepository, NewsletterIssue, SubscriberDirectory
from newsletter_service.core.outbox.backoff import RetryPolicy
from newsletter_service.core.outbox.writer import OutboxWriter


class FakeTransport:
    """
    Records every send. Outcomes are scripted per recipient: each entry
    is an exception to raise or None for success, consumed in order.
    """

    def __init__(self, outcomes: Optional[Dict[str, List[Optional[Exception]]]] = None, delay: float = 0.0):
        self.sent: List[str] = []
        self.outcomes = {email: list(script) for email, script in (outcomes or {}).items()}
        self.delay = delay

    async def send(self, recipient: str, subject: str, html_body: str, text_body: str) -> None:
        self.sent.append(str(recipient))
        if self.delay:
            await asyncio.sleep(self.delay)
        script = self.outcomes.get(str(recipient))
        if script:
            outcome = script.pop(0)
            if outcome is not None:
                raise outcome


async def add_subscriber(db: DatabaseAdapter, email: str, status: str = "confirmed") -> None:
    await db.execute(
        """
        INSERT INTO subscriptions (id, email, name, status, subscribed_at)
        VALUES ($1, $2, $3, $4, $5)
        """,
        uuid4(),
        email,
        email.split("@")[0],
        status,
        datetime.now(timezone.utc)
    )


def immediate_retry_policy(max_attempts: int = 5) -> RetryPolicy:
    """Policy whose retries are due immediately, so tests need not wait."""
    return RetryPolicy(base_delay_seconds=0, max_delay_seconds=0, max_attempts=max_attempts, rng=lambda: 0.0)


@pytest.fixture
async def db(tmp_path):
    adapter = DatabaseAdapter(DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "newsletter.db")))
    await adapter.connect()
    await apply_schema(adapter)
    yield adapter
    await adapter.disconnect()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def subscribe(db):
    async def _subscribe(*emails: str, status: str = "confirmed") -> None:
        for email in emails:
            await add_subscriber(db, email, status)
    return _subscribe


@pytest.fixture
def retry_policy():
    return immediate_retry_policy()


@pytest.fixture
def publish(db):
    """Fan an issue out to the current confirmed subscribers, bypassing HTTP."""
    async def _publish(title: str = "Issue #1") -> NewsletterIssue:
        issue = NewsletterIssue.from_content(
            IssueContent(title=title, html_content="<p>Hello</p>", text_content="Hello"),
            created_by="operator-1",
        )
        async with db.transaction() as tx:
            emails = await SubscriberDirectory().list_confirmed(tx)
            await OutboxWriter(IssueRepository(db)).enqueue_issue(tx, issue, emails)
        return issue
    return _publish
