"""
Email Client

HTTP client for the transactional mail API. Sends one message per call
and classifies failures as transient or permanent.
"""

import logging
from typing import Optional, Protocol

import httpx

from .errors import PermanentEmailError, TransientEmailError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


class MailTransport(Protocol):
    """Capability consumed by the delivery workers."""

    async def send(self, recipient: str, subject: str, html_body: str, text_body: str) -> None:
        """Send one message, raising TransientEmailError or PermanentEmailError on failure."""


def classify_status(status_code: int) -> type:
    """Map an HTTP status from the mail API to an error class."""
    if status_code >= 500 or status_code in RETRYABLE_STATUS_CODES:
        return TransientEmailError
    return PermanentEmailError


class EmailClient:
    """
    Mail API client.

    Usage:
        client = EmailClient(
            base_url="https://api.postmarkapp.com",
            sender="newsletter@example.com",
            auth_token="...",
            timeout=10.0,
        )
        await client.send("reader@example.com", "Issue #1", "<p>Hi</p>", "Hi")
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str,
        sender: str,
        auth_token: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        try:
            url = httpx.URL(base_url.strip())
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid mail API URL {base_url!r}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"Invalid mail API URL {base_url!r}")

        self.base_url = str(url).rstrip("/")
        self.sender = sender
        self._auth_token = auth_token
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def send(self, recipient: str, subject: str, html_body: str, text_body: str) -> None:
        payload = {
            "From": self.sender,
            "To": recipient,
            "Subject": subject,
            "HtmlBody": html_body,
            "TextBody": text_body,
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/email",
                json=payload,
                headers={"X-Postmark-Server-Token": self._auth_token},
            )
        except httpx.TimeoutException as e:
            raise TransientEmailError(f"Mail API timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientEmailError(f"Mail API unreachable: {e}") from e

        if response.is_success:
            return

        error_cls = classify_status(response.status_code)
        logger.debug(
            "Mail API rejected message: status=%s body=%s",
            response.status_code,
            response.text[:200]
        )
        raise error_cls(
            f"Mail API returned {response.status_code}",
            status_code=response.status_code
        )

    async def aclose(self) -> None:
        await self._client.aclose()
