"""
Request-scoped dependencies built from the handles stored on app.state.
"""

from typing import Optional

from fastapi import Depends, Request

from ..core.config import ServiceConfig
from ..core.database.adapter import DatabaseAdapter
from ..core.idempotency.store import IdempotencyStore
from ..core.newsletters.repository import IssueRepository
from ..core.newsletters.subscribers import SubscriberDirectory
from ..core.outbox.dlq import DLQManager
from ..core.outbox.processor import DeliveryWorkerPool
from ..core.outbox.queue import TaskQueue
from ..core.outbox.writer import OutboxWriter


def get_db(request: Request) -> DatabaseAdapter:
    return request.app.state.db


def get_service_config(request: Request) -> ServiceConfig:
    return request.app.state.config


def get_worker_pool(request: Request) -> Optional[DeliveryWorkerPool]:
    return getattr(request.app.state, "worker_pool", None)


def get_idempotency_store(db: DatabaseAdapter = Depends(get_db)) -> IdempotencyStore:
    return IdempotencyStore(db)


def get_issue_repository(db: DatabaseAdapter = Depends(get_db)) -> IssueRepository:
    return IssueRepository(db)


def get_outbox_writer(issues: IssueRepository = Depends(get_issue_repository)) -> OutboxWriter:
    return OutboxWriter(issues)


def get_subscriber_directory() -> SubscriberDirectory:
    return SubscriberDirectory()


def get_task_queue(db: DatabaseAdapter = Depends(get_db)) -> TaskQueue:
    return TaskQueue(db)


def get_dlq_manager(db: DatabaseAdapter = Depends(get_db)) -> DLQManager:
    return DLQManager(db)
