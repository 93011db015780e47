"""
Mail Transport Errors
"""

from typing import Optional


class EmailDeliveryError(Exception):
    """Base class for mail transport failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TransientEmailError(EmailDeliveryError):
    """Timeout, connection failure, rate limit or 5xx. Worth retrying."""


class PermanentEmailError(EmailDeliveryError):
    """Invalid address, hard bounce or rejected request. Never retried."""
