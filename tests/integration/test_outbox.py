"""
Tests for fan-out and the task claiming protocol.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from newsletter_service.core.database import DatabaseAdapter, DatabaseConfig
from newsletter_service.core.newsletters import IssueContent, IssueRepository, NewsletterIssue
from newsletter_service.core.outbox import DeliveryStatus, DLQManager, OutboxWriter, TaskQueue


class TestOutboxWriter:
    """One task per confirmed subscriber, written with the issue."""

    async def test_fan_out_covers_confirmed_subscribers_only(self, db, subscribe, publish):
        await subscribe("ada@gmail.com", "grace@gmail.com", "linus@gmail.com")
        await subscribe("pending@gmail.com", status="pending_confirmation")

        issue = await publish()
        tasks = await TaskQueue(db).list_tasks_for_issue(issue.id)

        assert sorted(t.subscriber_email for t in tasks) == ["ada@gmail.com", "grace@gmail.com", "linus@gmail.com"]
        assert all(t.status == DeliveryStatus.PENDING and t.attempts == 0 for t in tasks)

    async def test_duplicate_addresses_collapse(self, db):
        issue = NewsletterIssue.from_content(
            IssueContent(title="t", html_content="h", text_content="x"), created_by="op-1"
        )
        async with db.transaction() as tx:
            count = await OutboxWriter(IssueRepository(db)).enqueue_issue(
                tx, issue, ["ada@gmail.com", "ADA@gmail.com", " ada@gmail.com ", "grace@gmail.com"]
            )

        assert count == 2
        assert len(await TaskQueue(db).list_tasks_for_issue(issue.id)) == 2

    async def test_no_subscribers_still_stores_issue(self, db, publish):
        issue = await publish()
        assert await IssueRepository(db).get(issue.id) is not None
        assert await TaskQueue(db).list_tasks_for_issue(issue.id) == []


class TestClaiming:
    """Claims are atomic and disjoint."""

    async def test_claim_marks_processing(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)

        [task] = await queue.claim_batch(10, worker_id="w1")

        assert task.status == DeliveryStatus.PROCESSING
        assert task.claimed_by == "w1"
        assert task.claim_token is not None
        assert await queue.claim_batch(10, worker_id="w2") == []

    async def test_concurrent_claims_are_disjoint(self, db, subscribe, publish):
        await subscribe(*[f"reader{i}@gmail.com" for i in range(30)])
        await publish()
        queue = TaskQueue(db)

        batches = await asyncio.gather(*[queue.claim_batch(10, worker_id=f"w{i}") for i in range(4)])
        ids = [task.id for batch in batches for task in batch]

        assert len(ids) == 30
        assert len(set(ids)) == 30

    async def test_claims_from_separate_connections_are_disjoint(self, db, subscribe, publish):
        await subscribe(*[f"reader{i}@gmail.com" for i in range(40)])
        await publish()
        adapters = [
            DatabaseAdapter(DatabaseConfig(backend="sqlite", sqlite_path=db.config.sqlite_path))
            for _ in range(4)
        ]
        for adapter in adapters:
            await adapter.connect()

        try:
            batches = await asyncio.gather(*[
                TaskQueue(adapter).claim_batch(15, worker_id=f"w{i}")
                for i, adapter in enumerate(adapters)
            ])
        finally:
            for adapter in adapters:
                await adapter.disconnect()

        ids = [task.id for batch in batches for task in batch]
        assert len(ids) == 40
        assert len(set(ids)) == 40
        for i, batch in enumerate(batches):
            assert all(task.claimed_by == f"w{i}" for task in batch)

    async def test_tasks_not_yet_due_are_skipped(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)

        [task] = await queue.claim_batch(1)
        assert await queue.mark_retry(task, "503", backoff_seconds=60)

        assert await queue.claim_batch(10) == []
        stored = await queue.get_task(task.id)
        assert stored.status == DeliveryStatus.PENDING
        assert stored.attempts == 1
        assert stored.next_attempt_at > datetime.now(timezone.utc) + timedelta(seconds=50)


class TestOutcomes:
    """mark_* transitions and the claim token guard."""

    async def test_mark_done(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)
        [task] = await queue.claim_batch(1)

        assert await queue.mark_done(task)

        stored = await queue.get_task(task.id)
        assert stored.status == DeliveryStatus.DONE
        assert stored.attempts == 1
        assert stored.completed_at is not None
        assert await queue.mark_done(task) is False

    async def test_mark_poisoned(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)
        [task] = await queue.claim_batch(1)

        assert await queue.mark_poisoned(task, "hard bounce")

        stored = await queue.get_task(task.id)
        assert stored.status == DeliveryStatus.FAILED
        assert stored.last_error == "hard bounce"
        assert await queue.claim_batch(10) == []

    async def test_stale_claim_is_released_and_old_worker_cannot_finish(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)
        [task] = await queue.claim_batch(1, worker_id="crashed")

        await db.execute(
            "UPDATE delivery_tasks SET claimed_at = $1 WHERE id = $2",
            datetime.now(timezone.utc) - timedelta(seconds=600),
            task.id
        )

        assert await queue.release_stale_claims(lease_seconds=300) == 1
        stored = await queue.get_task(task.id)
        assert stored.status == DeliveryStatus.PENDING
        assert stored.claim_token is None
        assert stored.last_error == "claim lease expired"

        [reclaimed] = await queue.claim_batch(1, worker_id="healthy")
        assert await queue.mark_done(task) is False
        assert await queue.mark_done(reclaimed) is True

    async def test_fresh_claims_survive_sweep(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)
        await queue.claim_batch(1)

        assert await queue.release_stale_claims(lease_seconds=300) == 0

    async def test_stats(self, db, subscribe, publish):
        await subscribe("ada@gmail.com", "grace@gmail.com")
        issue = await publish()
        queue = TaskQueue(db)
        [task, _] = await queue.claim_batch(2)
        await queue.mark_done(task)

        assert await queue.get_stats() == {"pending": 0, "processing": 1, "done": 1, "failed": 0}
        assert (await queue.get_stats(issue.id))["done"] == 1


class TestPoisonedDeliveries:
    """Failed tasks as seen through the DLQ manager."""

    async def test_entries_are_typed(self, db, subscribe, publish):
        await subscribe("ada@gmail.com", "grace@gmail.com")
        issue = await publish()
        queue = TaskQueue(db)
        [task, _] = await queue.claim_batch(2)
        await queue.mark_poisoned(task, "hard bounce")
        dlq = DLQManager(db)

        [entry] = await dlq.get_entries(issue_id=issue.id)

        assert entry.id == task.id
        assert entry.newsletter_issue_id == issue.id
        assert entry.attempts == 1
        assert entry.last_error == "hard bounce"
        assert entry.failed_at.tzinfo is not None
        assert entry.failed_at >= entry.created_at
        assert entry.to_dict()["id"] == str(task.id)
        assert await dlq.get_count(issue.id) == 1

    async def test_requeue_only_moves_failed_tasks(self, db, subscribe, publish):
        await subscribe("ada@gmail.com")
        await publish()
        queue = TaskQueue(db)
        [task] = await queue.claim_batch(1)
        dlq = DLQManager(db)

        assert await dlq.requeue(task.id) is False
        await queue.mark_poisoned(task, "hard bounce")
        assert await dlq.requeue(task.id, operator_id="ops") is True

        stored = await queue.get_task(task.id)
        assert stored.status == DeliveryStatus.PENDING
        assert stored.attempts == 0
        assert await dlq.get_entries() == []
