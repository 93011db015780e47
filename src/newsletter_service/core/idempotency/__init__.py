"""
Idempotent Request Handling

Makes mutating requests safe to retransmit.

Usage:
    from newsletter_service.core.idempotency import IdempotencyStore, IdempotencyKey

    key = IdempotencyKey.parse(request.headers.get("Idempotency-Key"))
    response = await store.execute_idempotent(user_id, key, request_hash, handler)
"""

from .models import (
    IdempotencyConflictError,
    IdempotencyKey,
    IdempotencyRecord,
    InvalidIdempotencyKey,
    SavedResponse,
    compute_request_hash,
)
from .store import IdempotencyStore

__all__ = [
    "IdempotencyConflictError",
    "IdempotencyKey",
    "IdempotencyRecord",
    "IdempotencyStore",
    "InvalidIdempotencyKey",
    "SavedResponse",
    "compute_request_hash",
]
