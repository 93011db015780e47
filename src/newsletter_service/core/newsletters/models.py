"""
Newsletter Models
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, ValidationError


def _utcnow() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


class IssueContent(BaseModel):
    """The operator-supplied content of an issue."""

    title: str = Field(min_length=1, max_length=500)
    html_content: str = Field(min_length=1)
    text_content: str = Field(min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)


class NewsletterIssue(BaseModel):
    """A published newsletter issue. Immutable once stored."""

    id: UUID = Field(default_factory=uuid4)
    title: str
    html_body: str
    text_body: str
    created_by: str
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_content(cls, content: IssueContent, created_by: str) -> "NewsletterIssue":
        return cls(
            title=content.title,
            html_body=content.html_content,
            text_body=content.text_content,
            created_by=created_by,
        )


_email_adapter = TypeAdapter(EmailStr)


class SubscriberEmail(str):
    """A syntactically valid subscriber address."""

    @classmethod
    def parse(cls, raw: str) -> "SubscriberEmail":
        try:
            return cls(_email_adapter.validate_python((raw or "").strip()))
        except ValidationError as e:
            raise ValueError(f"Invalid email address {raw!r}") from e

    @classmethod
    def try_parse(cls, raw: str) -> Optional["SubscriberEmail"]:
        try:
            return cls.parse(raw)
        except ValueError:
            return None
