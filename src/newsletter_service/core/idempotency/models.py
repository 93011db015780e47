"""
Idempotency Models
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field


class InvalidIdempotencyKey(ValueError):
    """The client-supplied idempotency key is missing or malformed."""


class IdempotencyConflictError(Exception):
    """The idempotency key was already used for a different request payload."""

    def __init__(self, user_id: str, key: str):
        self.user_id = user_id
        self.key = key
        super().__init__(
            f"Idempotency key '{key}' was already used with a different request payload"
        )


@dataclass(frozen=True)
class IdempotencyKey:
    """A validated client-supplied idempotency key."""

    value: str

    MAX_LENGTH = 50

    @classmethod
    def parse(cls, raw: Optional[str]) -> "IdempotencyKey":
        value = (raw or "").strip()
        if not value:
            raise InvalidIdempotencyKey("The idempotency key cannot be empty")
        if len(value) > cls.MAX_LENGTH:
            raise InvalidIdempotencyKey(
                f"The idempotency key must be shorter than {cls.MAX_LENGTH + 1} characters"
            )
        return cls(value)

    def __str__(self) -> str:
        return self.value


def compute_request_hash(payload: Mapping[str, Any]) -> str:
    """Stable fingerprint of a request payload, independent of key order."""
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class SavedResponse(BaseModel):
    """An HTTP response captured for replay."""

    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""


class IdempotencyRecord(BaseModel):
    """A stored idempotency record."""

    user_id: str
    idempotency_key: str
    request_hash: str
    response: Optional[SavedResponse] = None
    created_at: datetime

    @property
    def is_complete(self) -> bool:
        return self.response is not None
