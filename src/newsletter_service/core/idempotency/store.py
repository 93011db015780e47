"""
Idempotency Store

Persists the outcome of completed mutating requests so that a
retransmission returns the original response without re-running side
effects.

The key is reserved, the side effects are written and the response is
saved in one transaction. A concurrent request with the same key is
rejected by the (user_id, idempotency_key) primary key and falls back to
reading the winner's record.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from ..database.adapter import DatabaseAdapter, Transaction, is_unique_violation
from ..observability.metrics import record_counter
from .models import (
    IdempotencyConflictError,
    IdempotencyKey,
    IdempotencyRecord,
    SavedResponse,
)

logger = logging.getLogger(__name__)

IdempotentHandler = Callable[[Transaction], Awaitable[SavedResponse]]


def _row_to_record(row: Dict[str, Any]) -> IdempotencyRecord:
    response = None
    if row["response_status_code"] is not None:
        headers = row["response_headers"]
        if isinstance(headers, str):
            headers = json.loads(headers)
        response = SavedResponse(
            status_code=row["response_status_code"],
            headers=headers or {},
            body=bytes(row["response_body"] or b""),
        )
    return IdempotencyRecord(
        user_id=row["user_id"],
        idempotency_key=row["idempotency_key"],
        request_hash=row["request_hash"],
        response=response,
        created_at=row["created_at"],
    )


class IdempotencyStore:
    """
    Executes mutating handlers at most once per (user_id, idempotency_key).

    Usage:
        store = IdempotencyStore(db)

        async def handler(tx):
            await tx.execute("INSERT ...")
            return SavedResponse(status_code=201, headers={...}, body=b"...")

        response = await store.execute_idempotent(user_id, key, request_hash, handler)
    """

    def __init__(self, db: DatabaseAdapter):
        self._db = db

    async def get_record(self, user_id: str, key: IdempotencyKey) -> Optional[IdempotencyRecord]:
        """Load the record for a key, complete or not."""
        row = await self._db.fetchrow(
            """
            SELECT user_id, idempotency_key, request_hash, response_status_code,
                   response_headers, response_body, created_at
            FROM idempotency_records
            WHERE user_id = $1 AND idempotency_key = $2
            """,
            user_id,
            key.value
        )
        return _row_to_record(row) if row else None

    async def get_saved_response(self, user_id: str, key: IdempotencyKey) -> Optional[SavedResponse]:
        """Return the stored response for a key, or None if there is no complete record."""
        record = await self.get_record(user_id, key)
        if record is None or not record.is_complete:
            return None
        return record.response

    async def execute_idempotent(
        self,
        user_id: str,
        key: IdempotencyKey,
        request_hash: str,
        handler: IdempotentHandler,
    ) -> SavedResponse:
        """
        Run handler once for this key and return its response, or replay.

        Args:
            user_id: The operator issuing the request
            key: Client-supplied idempotency key
            request_hash: Fingerprint of the request payload
            handler: Coroutine receiving the open Transaction; every durable
                write it makes must go through that transaction

        Returns:
            The response produced by the first successful execution

        Raises:
            IdempotencyConflictError: The key was used with a different payload
            Exception: Whatever handler raises; nothing is persisted
        """
        record = await self.get_record(user_id, key)
        if record is not None and record.is_complete:
            return self._replay(record, request_hash)

        try:
            async with self._db.transaction() as tx:
                await self._reserve(tx, user_id, key, request_hash)
                response = await handler(tx)
                await self._save_response(tx, user_id, key, response)
        except Exception as e:
            if not is_unique_violation(e):
                raise
            # Lost the race to a concurrent request carrying the same key
            record = await self.get_record(user_id, key)
            if record is None or not record.is_complete:
                raise
            logger.info(
                "Concurrent request for idempotency key %s resolved by replay",
                key.value,
                extra={"user_id": user_id}
            )
            return self._replay(record, request_hash)

        logger.debug(
            "Saved idempotent response: key=%s status=%s",
            key.value,
            response.status_code,
            extra={"user_id": user_id}
        )
        return response

    def _replay(self, record: IdempotencyRecord, request_hash: str) -> SavedResponse:
        if record.request_hash != request_hash:
            raise IdempotencyConflictError(record.user_id, record.idempotency_key)
        record_counter("idempotent_replays_total")
        logger.info(
            "Replaying saved response for idempotency key %s",
            record.idempotency_key,
            extra={"user_id": record.user_id}
        )
        return record.response

    async def _reserve(
        self,
        tx: Transaction,
        user_id: str,
        key: IdempotencyKey,
        request_hash: str,
    ) -> None:
        await tx.execute(
            """
            INSERT INTO idempotency_records (user_id, idempotency_key, request_hash, created_at)
            VALUES ($1, $2, $3, $4)
            """,
            user_id,
            key.value,
            request_hash,
            datetime.now(timezone.utc)
        )

    async def _save_response(
        self,
        tx: Transaction,
        user_id: str,
        key: IdempotencyKey,
        response: SavedResponse,
    ) -> None:
        await tx.execute(
            """
            UPDATE idempotency_records
            SET response_status_code = $3,
                response_headers = $4,
                response_body = $5
            WHERE user_id = $1 AND idempotency_key = $2
              AND response_status_code IS NULL
            """,
            user_id,
            key.value,
            response.status_code,
            json.dumps(response.headers),
            response.body
        )
