"""
Retry / Backoff Policy

Decides whether a failed delivery is retried, how long to wait, and when
the task is poisoned.

Defaults: 5 attempts in total, 5s base delay doubling per retry, capped
at 300s, plus up to 10% additive jitter.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ..email.errors import PermanentEmailError


class RetryAction(str, Enum):
    RETRY = "retry"
    POISON = "poison"


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    delay_seconds: float = 0.0
    reason: str = ""

    @property
    def should_retry(self) -> bool:
        return self.action == RetryAction.RETRY


@dataclass
class RetryPolicy:
    """
    Exponential backoff with a retry cap.

    delay(k) = min(max_delay, base_delay * 2 ** (k - 1)) + U(0, jitter_ratio * that)
    for the k-th retry (k starts at 1).
    """

    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 300.0
    max_attempts: int = 5
    jitter_ratio: float = 0.1
    rng: Callable[[], float] = field(default=random.random, repr=False)

    def base_delay(self, retry_count: int) -> float:
        # retry_count starts at 1 for the first retry
        delay = self.base_delay_seconds * (2 ** max(0, retry_count - 1))
        return float(min(self.max_delay_seconds, delay))

    def delay(self, retry_count: int) -> float:
        base = self.base_delay(retry_count)
        return base + base * self.jitter_ratio * self.rng()

    def decide(self, attempts: int, error: Optional[BaseException] = None) -> RetryDecision:
        """
        Decide what to do after a failed attempt.

        Args:
            attempts: Attempts made so far, including the one that just failed
            error: The failure; PermanentEmailError is never retried
        """
        if isinstance(error, PermanentEmailError):
            return RetryDecision(RetryAction.POISON, reason="permanent failure")
        if attempts >= self.max_attempts:
            return RetryDecision(
                RetryAction.POISON,
                reason=f"exceeded {self.max_attempts} attempts"
            )
        return RetryDecision(RetryAction.RETRY, delay_seconds=self.delay(attempts))
