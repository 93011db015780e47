"""
Confirmed Subscriber Source

Reads the confirmed-subscriber set maintained by the subscription flow.
"""

import logging
from typing import List

from ..database.adapter import Transaction

logger = logging.getLogger(__name__)

CONFIRMED_STATUS = "confirmed"


class SubscriberDirectory:
    """Read-only view over the subscriptions table."""

    async def list_confirmed(self, tx: Transaction) -> List[str]:
        """
        Return the addresses of all currently confirmed subscribers.

        Addresses are returned as stored. Malformed addresses are not
        filtered here; their delivery tasks fail permanently so they stay
        visible to operators.
        """
        rows = await tx.fetch(
            "SELECT email FROM subscriptions WHERE status = $1 ORDER BY subscribed_at, email",
            CONFIRMED_STATUS
        )
        emails = [row["email"] for row in rows]
        logger.debug("Loaded %d confirmed subscribers", len(emails))
        return emails
