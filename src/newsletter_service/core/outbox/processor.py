"""
Delivery Worker

Background worker that claims due delivery tasks, sends each one through
the mail transport and records the outcome with retry and backoff.

Loop: claim -> (nothing due: sleep, interruptible by stop) -> process
each task -> check stop between tasks. Tasks claimed but not processed
when a stop arrives stay `processing` until the lease sweep returns them.
"""

import asyncio
import logging
import socket
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from ..email.client import MailTransport
from ..email.errors import PermanentEmailError, TransientEmailError
from ..newsletters.models import NewsletterIssue, SubscriberEmail
from ..newsletters.repository import IssueRepository
from ..observability import create_span, record_counter, record_histogram
from .backoff import RetryPolicy
from .models import DeliveryTask
from .queue import TaskQueue

logger = logging.getLogger(__name__)


class DeliveryWorker:
    """
    Delivers newsletter issues one task at a time.

    Features:
    - Claims batches with the TaskQueue protocol
    - Per-send timeout on the transport call
    - Retries transient failures with exponential backoff
    - Poisons permanent failures and tasks that exhaust their attempts
    - Periodically releases claims whose lease expired
    """

    def __init__(
        self,
        queue: TaskQueue,
        issues: IssueRepository,
        transport: MailTransport,
        policy: Optional[RetryPolicy] = None,
        worker_id: Optional[str] = None,
        batch_size: int = 10,
        idle_interval: float = 10.0,
        error_interval: float = 1.0,
        send_timeout: float = 10.0,
        lease_seconds: float = 300.0,
        sweep_interval: float = 60.0,
    ):
        self.queue = queue
        self.issues = issues
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.worker_id = worker_id or f"{socket.gethostname()}-worker"
        self.batch_size = batch_size
        self.idle_interval = idle_interval
        self.error_interval = error_interval
        self.send_timeout = send_timeout
        self.lease_seconds = lease_seconds
        self.sweep_interval = sweep_interval
        self._last_sweep: Optional[float] = None

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until stop_event is set or the task is cancelled."""
        logger.info("Delivery worker %s started", self.worker_id)
        try:
            while not stop_event.is_set():
                try:
                    await self._maybe_sweep()
                    processed = await self.run_once(stop_event)
                except Exception as e:
                    logger.error(
                        "Delivery worker %s error: %s", self.worker_id, e,
                        exc_info=True, extra={"worker_id": self.worker_id}
                    )
                    await _wait(stop_event, self.error_interval)
                    continue

                if processed == 0:
                    await _wait(stop_event, self.idle_interval)
        finally:
            logger.info("Delivery worker %s stopped", self.worker_id)

    async def run_once(self, stop_event: Optional[asyncio.Event] = None) -> int:
        """
        Claim one batch and process it.

        Returns:
            Number of tasks claimed (0 when nothing was due)
        """
        with create_span("delivery.claim", {"worker_id": self.worker_id}) as span:
            tasks = await self.queue.claim_batch(self.batch_size, self.worker_id)
            span.set_attribute("claimed", len(tasks))

        if not tasks:
            return 0
        record_counter("delivery_tasks_claimed_total", len(tasks))

        issues: Dict[UUID, NewsletterIssue] = {}
        for index, task in enumerate(tasks):
            if stop_event is not None and stop_event.is_set():
                logger.info(
                    "Stop requested; leaving %d claimed tasks for lease recovery",
                    len(tasks) - index,
                    extra={"worker_id": self.worker_id}
                )
                break
            try:
                await self._deliver(task, issues)
            except Exception as e:
                # Left in processing; the lease sweep returns it to pending
                logger.error(
                    "Failed to process delivery task %s: %s", task.id, e,
                    exc_info=True,
                    extra={"task_id": str(task.id), "worker_id": self.worker_id}
                )

        return len(tasks)

    async def _maybe_sweep(self) -> None:
        now = time.monotonic()
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        released = await self.queue.release_stale_claims(self.lease_seconds)
        if released:
            record_counter("delivery_claims_released_total", released)

    async def _load_issue(self, issue_id: UUID, cache: Dict[UUID, NewsletterIssue]) -> Optional[NewsletterIssue]:
        if issue_id not in cache:
            issue = await self.issues.get(issue_id)
            if issue is None:
                return None
            cache[issue_id] = issue
        return cache[issue_id]

    async def _deliver(self, task: DeliveryTask, issues: Dict[UUID, NewsletterIssue]) -> None:
        log_extra = {
            "task_id": str(task.id),
            "newsletter_issue_id": str(task.newsletter_issue_id),
            "worker_id": self.worker_id,
        }

        recipient = SubscriberEmail.try_parse(task.subscriber_email)
        if recipient is None:
            logger.warning("Stored subscriber address is invalid; poisoning task", extra=log_extra)
            await self._poison(task, "invalid subscriber email address", log_extra)
            return

        issue = await self._load_issue(task.newsletter_issue_id, issues)
        if issue is None:
            await self._poison(task, "newsletter issue not found", log_extra)
            return

        started = time.monotonic()
        with create_span("delivery.send", {"task_id": str(task.id), "attempt": task.attempts + 1}) as span:
            try:
                await asyncio.wait_for(
                    self.transport.send(recipient, issue.title, issue.html_body, issue.text_body),
                    timeout=self.send_timeout
                )
            except PermanentEmailError as e:
                span.set_attribute("outcome", "failed")
                logger.warning("Permanent delivery failure: %s", e, extra=log_extra)
                await self._poison(task, str(e), log_extra)
                return
            except asyncio.TimeoutError:
                span.set_attribute("outcome", "timeout")
                await self._record_failure(
                    task, TransientEmailError(f"send timed out after {self.send_timeout}s"), log_extra
                )
                return
            except Exception as e:
                # Anything unclassified is treated as transient
                span.set_attribute("outcome", "retry")
                await self._record_failure(task, e, log_extra)
                return
            finally:
                record_histogram("delivery_send_duration_seconds", time.monotonic() - started)

            span.set_attribute("outcome", "done")

        if await self.queue.mark_done(task):
            record_counter("delivery_tasks_delivered_total")
            logger.info("Delivered newsletter issue to subscriber", extra=log_extra)
        else:
            logger.warning("Claim lost before recording delivery", extra=log_extra)

    async def _record_failure(self, task: DeliveryTask, error: Exception, log_extra: Dict[str, str]) -> None:
        attempts = task.attempts + 1
        decision = self.policy.decide(attempts, error)
        message = f"{type(error).__name__}: {error}"

        if not decision.should_retry:
            logger.error(
                "Delivery failed after %d attempts (%s): %s", attempts, decision.reason, error,
                extra=log_extra
            )
            await self._poison(task, message, log_extra)
            return

        if await self.queue.mark_retry(task, message, decision.delay_seconds):
            record_counter("delivery_tasks_retried_total")
            logger.warning(
                "Delivery attempt %d failed, retrying in %.1fs: %s",
                attempts, decision.delay_seconds, error,
                extra=log_extra
            )
        else:
            logger.warning("Claim lost before recording retry", extra=log_extra)

    async def _poison(self, task: DeliveryTask, error: str, log_extra: Dict[str, str]) -> None:
        if await self.queue.mark_poisoned(task, error):
            record_counter("delivery_tasks_poisoned_total")
        else:
            logger.warning("Claim lost before recording failure", extra=log_extra)


async def _wait(stop_event: asyncio.Event, timeout: float) -> None:
    """Sleep for timeout seconds, returning early if stop_event is set."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


class DeliveryWorkerPool:
    """
    N independent delivery workers sharing only the database.

    Usage:
        pool = DeliveryWorkerPool(queue, issues, transport, workers=2)
        await pool.start()
        ...
        await pool.stop(grace_seconds=30)
    """

    def __init__(
        self,
        queue: TaskQueue,
        issues: IssueRepository,
        transport: MailTransport,
        workers: int = 2,
        policy: Optional[RetryPolicy] = None,
        name_prefix: Optional[str] = None,
        **worker_options,
    ):
        prefix = name_prefix or socket.gethostname()
        self.workers: List[DeliveryWorker] = [
            DeliveryWorker(
                queue,
                issues,
                transport,
                policy=policy,
                worker_id=f"{prefix}-worker-{index}",
                **worker_options,
            )
            for index in range(max(1, workers))
        ]
        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self.started_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(worker.run(self._stop_event), name=worker.worker_id)
            for worker in self.workers
        ]
        self.started_at = datetime.now(timezone.utc)
        logger.info("Delivery worker pool started with %d workers", len(self._tasks))

    async def stop(self, grace_seconds: float = 30.0) -> None:
        """Signal stop, wait up to grace_seconds, then cancel stragglers."""
        if not self._tasks:
            return

        self._stop_event.set()
        done, pending = await asyncio.wait(self._tasks, timeout=grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelling %d workers after %.0fs grace period", len(pending), grace_seconds)
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error("Delivery worker exited with error", exc_info=task.exception())

        self._tasks = []
        logger.info("Delivery worker pool stopped")

    def status(self) -> Dict[str, object]:
        return {
            "running": self.running,
            "workers": len(self.workers),
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
