"""
Mail Transport

The capability the delivery workers use to send one issue to one
subscriber.
"""

from .client import EmailClient, MailTransport, classify_status
from .errors import EmailDeliveryError, PermanentEmailError, TransientEmailError

__all__ = [
    "EmailClient",
    "EmailDeliveryError",
    "MailTransport",
    "PermanentEmailError",
    "TransientEmailError",
    "classify_status",
]
