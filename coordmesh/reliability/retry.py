"""
Retry Policy: Fixed Count, Fixed Interval

Implements the retry strategy used for session establishment and for
idempotent requests:
- At most ``max_retries`` retries after the first attempt
- A constant ``interval_ms`` wait between attempts (no backoff, no jitter)
- Only exceptions listed as retryable are retried; anything else
  propagates immediately

The same policy is handed to the ZooKeeper client as its own connection
and command retry so that reconnects behave the same way.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Type, TypeVar

from kazoo.retry import KazooRetry

from coordmesh.core import constants as C
from coordmesh.core.types import Result, Ok, Err

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry configuration."""

    max_retries: int = C.ZK_NUM_RETRIES_DEFAULT
    interval_ms: int = C.ZK_RETRY_INTERVAL_MS_DEFAULT

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Single attempt."""
        return cls(max_retries=0, interval_ms=0)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000

    def to_kazoo_retry(self) -> KazooRetry:
        """Equivalent fixed-interval retry for the ZooKeeper client."""
        return KazooRetry(
            max_tries=self.max_retries,
            delay=self.interval_s,
            backoff=1,
            max_jitter=0,
            max_delay=max(self.interval_s, 0.001),
        )


@dataclass(frozen=True, slots=True)
class RetryFailure:
    """Why a retried call gave up."""

    attempts: int
    last_error: Optional[BaseException]


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    retryable: tuple[Type[BaseException], ...],
    sleep: Callable[[float], Any] = time.sleep,
) -> Result[T, RetryFailure]:
    """
    Execute func, retrying retryable failures per policy.

    Args:
        func: Zero-argument callable
        policy: Retry configuration
        retryable: Exception types that count as transient
        sleep: Wait function (seconds)

    Returns:
        Ok with the result, or Err after exhausting retries. Exceptions
        outside ``retryable`` propagate unchanged.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        try:
            return Ok(func())
        except retryable as e:
            last_error = e
            logger.debug("Attempt %d/%d failed: %s", attempt + 1, policy.max_attempts, e)

        if attempt < policy.max_retries:
            sleep(policy.interval_s)

    return Err(RetryFailure(attempts=policy.max_attempts, last_error=last_error))
