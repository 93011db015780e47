"""
Tests for the delivery worker loop and worker pool.
"""

import asyncio

import pytest

from newsletter_service.core.email.errors import PermanentEmailError, TransientEmailError
from newsletter_service.core.newsletters import IssueRepository
from newsletter_service.core.outbox import DeliveryStatus, DeliveryWorker, DeliveryWorkerPool, TaskQueue


def make_worker(db, transport, policy, **options) -> DeliveryWorker:
    return DeliveryWorker(
        TaskQueue(db),
        IssueRepository(db),
        transport,
        policy=policy,
        worker_id="test-worker",
        **options,
    )


async def statuses(db, issue_id):
    tasks = await TaskQueue(db).list_tasks_for_issue(issue_id)
    return {t.subscriber_email: (t.status, t.attempts) for t in tasks}


async def wait_until(predicate, timeout: float = 5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not await predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.02)


class TestDeliveryOutcomes:
    """Per-task outcome handling."""

    async def test_success_retry_and_permanent_failure(self, db, subscribe, publish, make_transport, retry_policy):
        """A succeeds, B fails once transiently then succeeds, C bounces permanently."""
        await subscribe("a@gmail.com", "b@gmail.com", "c@gmail.com")
        issue = await publish()
        transport = make_transport({
            "b@gmail.com": [TransientEmailError("503", status_code=503)],
            "c@gmail.com": [PermanentEmailError("hard bounce", status_code=422)],
        })
        worker = make_worker(db, transport, retry_policy)

        assert await worker.run_once() == 3
        assert await worker.run_once() == 1
        assert await worker.run_once() == 0

        assert await statuses(db, issue.id) == {
            "a@gmail.com": (DeliveryStatus.DONE, 1),
            "b@gmail.com": (DeliveryStatus.DONE, 2),
            "c@gmail.com": (DeliveryStatus.FAILED, 1),
        }
        assert sorted(transport.sent) == ["a@gmail.com", "b@gmail.com", "b@gmail.com", "c@gmail.com"]

    async def test_poisoned_after_max_attempts(self, db, subscribe, publish, make_transport, retry_policy):
        await subscribe("flaky@gmail.com")
        issue = await publish()
        transport = make_transport({"flaky@gmail.com": [TransientEmailError("503")] * 10})
        worker = make_worker(db, transport, retry_policy)

        for _ in range(10):
            await worker.run_once()

        assert await statuses(db, issue.id) == {"flaky@gmail.com": (DeliveryStatus.FAILED, 5)}
        assert len(transport.sent) == 5

    async def test_invalid_stored_address_is_poisoned_without_sending(self, db, subscribe, publish, transport, retry_policy):
        await subscribe("not-an-email", "ada@gmail.com")
        issue = await publish()

        await make_worker(db, transport, retry_policy).run_once()

        result = await statuses(db, issue.id)
        assert result["not-an-email"] == (DeliveryStatus.FAILED, 1)
        assert result["ada@gmail.com"] == (DeliveryStatus.DONE, 1)
        assert transport.sent == ["ada@gmail.com"]

    async def test_send_timeout_is_retried(self, db, subscribe, publish, make_transport, retry_policy):
        await subscribe("slow@gmail.com")
        issue = await publish()
        worker = make_worker(db, make_transport(delay=1.0), retry_policy, send_timeout=0.05)

        await worker.run_once()

        [task] = await TaskQueue(db).list_tasks_for_issue(issue.id)
        assert task.status == DeliveryStatus.PENDING
        assert task.attempts == 1
        assert "timed out" in task.last_error

    async def test_unexpected_error_is_treated_as_transient(self, db, subscribe, publish, make_transport, retry_policy):
        await subscribe("ada@gmail.com")
        issue = await publish()
        transport = make_transport({"ada@gmail.com": [RuntimeError("socket closed")]})
        worker = make_worker(db, transport, retry_policy)

        await worker.run_once()
        await worker.run_once()

        assert await statuses(db, issue.id) == {"ada@gmail.com": (DeliveryStatus.DONE, 2)}

    async def test_outcome_write_failure_does_not_stop_batch(self, db, subscribe, publish, transport, retry_policy):
        await subscribe("a@gmail.com", "b@gmail.com", "c@gmail.com")
        issue = await publish()
        worker = make_worker(db, transport, retry_policy)
        mark_done = worker.queue.mark_done
        calls = []

        async def flaky_mark_done(task):
            calls.append(task.subscriber_email)
            if len(calls) == 1:
                raise ConnectionError("database blip")
            return await mark_done(task)

        worker.queue.mark_done = flaky_mark_done

        assert await worker.run_once() == 3

        assert sorted(transport.sent) == ["a@gmail.com", "b@gmail.com", "c@gmail.com"]
        result = await statuses(db, issue.id)
        failed_email = calls[0]
        assert result.pop(failed_email) == (DeliveryStatus.PROCESSING, 0)
        assert set(result.values()) == {(DeliveryStatus.DONE, 1)}

        # The sweep hands the stranded task back for redelivery
        assert await TaskQueue(db).release_stale_claims(lease_seconds=-1) == 1
        assert await worker.run_once() == 1
        assert (await statuses(db, issue.id))[failed_email] == (DeliveryStatus.DONE, 1)


class TestWorkerLoop:
    """Cooperative stop and recovery."""

    async def test_stop_between_tasks_leaves_claims_for_lease_recovery(self, db, subscribe, publish, transport, retry_policy):
        await subscribe("ada@gmail.com", "grace@gmail.com")
        issue = await publish()
        stop = asyncio.Event()
        stop.set()

        claimed = await make_worker(db, transport, retry_policy).run_once(stop)

        assert claimed == 2
        assert transport.sent == []
        result = await statuses(db, issue.id)
        assert {status for status, _ in result.values()} == {DeliveryStatus.PROCESSING}

    async def test_run_exits_promptly_when_stopped_while_idle(self, db, transport, retry_policy):
        worker = make_worker(db, transport, retry_policy, idle_interval=60)
        stop = asyncio.Event()
        task = asyncio.create_task(worker.run(stop))
        await asyncio.sleep(0.05)

        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

    async def test_run_survives_database_errors(self, db, transport, retry_policy):
        worker = make_worker(db, transport, retry_policy, error_interval=0.01, idle_interval=0.01)
        calls = []

        async def failing_claim(limit, worker_id="worker"):
            calls.append(1)
            raise ConnectionError("database unavailable")

        worker.queue.claim_batch = failing_claim
        stop = asyncio.Event()
        task = asyncio.create_task(worker.run(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert len(calls) > 1


class TestWorkerPool:
    """Several workers sharing one database."""

    async def test_every_task_delivered_once(self, db, subscribe, publish, transport, retry_policy):
        emails = [f"reader{i}@gmail.com" for i in range(25)]
        await subscribe(*emails)
        issue = await publish()
        pool = DeliveryWorkerPool(
            TaskQueue(db), IssueRepository(db), transport,
            workers=3, policy=retry_policy, batch_size=4, idle_interval=0.02,
        )

        await pool.start()
        assert pool.running

        async def all_done():
            stats = await TaskQueue(db).get_stats(issue.id)
            return stats["done"] == len(emails)

        try:
            await wait_until(all_done)
        finally:
            await pool.stop(grace_seconds=2)

        assert not pool.running
        assert sorted(transport.sent) == sorted(emails)

    async def test_stop_cancels_after_grace_period(self, db, subscribe, publish, make_transport, retry_policy):
        await subscribe("ada@gmail.com")
        issue = await publish()
        transport = make_transport(delay=30)
        pool = DeliveryWorkerPool(
            TaskQueue(db), IssueRepository(db), transport,
            workers=1, policy=retry_policy, idle_interval=0.02, send_timeout=60,
        )

        await pool.start()
        await wait_until(lambda: _has_sent(transport))
        await pool.stop(grace_seconds=0.1)

        assert not pool.running
        # Claimed but unfinished: left for the lease sweep
        assert await statuses(db, issue.id) == {"ada@gmail.com": (DeliveryStatus.PROCESSING, 0)}


async def _has_sent(transport) -> bool:
    return bool(transport.sent)
