"""Retry external model calls on transient failures.

Upstream providers answer bursts of requests with 503 / overloaded /
rate-limit errors. Every model call in the pipeline goes through
``with_retry`` so the backoff policy lives in one place. Classification is
done on the error message because the providers' error bodies, not their
exception types, say whether a failure is transient.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from roundup.parsing import MalformedOutputError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_DELAY = 60.0  # seconds
OVERLOAD_MULTIPLIER = 2.5
DEFAULT_MULTIPLIER = 2.0

_TRANSIENT_MARKERS: tuple[str, ...] = (
    "503",
    "529",
    "429",
    "overloaded",
    "unavailable",
    "rate limit",
    "rate_limit",
    "econnreset",
    "connection reset",
    "connection error",
    "incomplete envelope",
    "protocol error",
    "networkerror",
    "network error",
    "failed to fetch",
    "timed out",
)
_OVERLOAD_MARKERS: tuple[str, ...] = ("503", "529", "overloaded")


def is_retryable(error: BaseException) -> bool:
    """Return True if *error* looks like a transient upstream failure."""
    if isinstance(error, MalformedOutputError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def is_overload(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _OVERLOAD_MARKERS)


def backoff_delay(error: BaseException, attempt: int, base_delay: float) -> float:
    """Seconds to wait before retrying after the *attempt*-th failure (0-based)."""
    multiplier = OVERLOAD_MULTIPLIER if is_overload(error) else DEFAULT_MULTIPLIER
    return min(base_delay * multiplier**attempt, MAX_DELAY)


def with_retry(
    fn: Callable[[], T],
    max_retries: int = 6,
    base_delay: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *fn*, retrying transient failures with exponential backoff.

    Args:
        fn: Zero-argument callable performing one external request.
        max_retries: Retries after the first attempt.
        base_delay: Seconds before the first retry.
        sleep: Injected for tests.

    Raises:
        Whatever *fn* raised, once the error is not transient or the retry
        budget is spent.
    """
    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt == max_retries:
                raise
            delay = backoff_delay(exc, attempt, base_delay)
            logger.warning(
                "API call failed (attempt %d/%d), retrying in %.0fs: %s",
                attempt + 1, max_retries + 1, delay, exc,
            )
            sleep(delay)
    raise RuntimeError("retry loop exited without return or raise")


@dataclass
class RetryPolicy:
    """Retry settings handed to every component that calls a model."""

    max_retries: int = 6
    base_delay: float = 5.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def call(self, fn: Callable[[], T]) -> T:
        return with_retry(fn, self.max_retries, self.base_delay, self.sleep)

    def with_limits(self, max_retries: int, base_delay: float) -> RetryPolicy:
        """Return a copy with different limits sharing the same sleep."""
        return RetryPolicy(max_retries=max_retries, base_delay=base_delay, sleep=self.sleep)
