"""
Operator Identity

The authenticated principal issuing admin requests. Its id scopes
idempotency keys.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Operator:
    """Operator (admin user) as seen by this service."""

    id: str
    name: str
    role: str = "admin"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role}


DEV_OPERATOR = Operator(
    id="00000000-0000-0000-0000-000000000001",
    name="Development User",
)
