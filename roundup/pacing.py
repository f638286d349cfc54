"""Delay policies between consecutive research calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

#: Default gap between research calls, and the shorter gap for search-backed
#: models that answer faster and tolerate more traffic.
DEFAULT_REQUEST_DELAY = 3.0
VERIFIED_CITATION_REQUEST_DELAY = 1.5


class DelayPolicy(Protocol):
    def next_delay(self, calls_made: int) -> float: ...


@dataclass
class FixedDelay:
    seconds: float = DEFAULT_REQUEST_DELAY

    def next_delay(self, calls_made: int) -> float:
        return self.seconds


class NoDelay:
    def next_delay(self, calls_made: int) -> float:
        return 0.0


@dataclass
class BackoffDelay:
    """Gap that grows with every call in the batch, capped at ``max_seconds``."""

    base: float = DEFAULT_REQUEST_DELAY
    factor: float = 1.5
    max_seconds: float = 30.0

    def next_delay(self, calls_made: int) -> float:
        return min(self.base * self.factor ** max(calls_made - 1, 0), self.max_seconds)


@dataclass
class Pacer:
    """Sleeps between network calls according to a swappable policy."""

    policy: DelayPolicy = field(default_factory=FixedDelay)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    calls_made: int = 0

    def pause(self) -> None:
        self.calls_made += 1
        delay = self.policy.next_delay(self.calls_made)
        if delay > 0:
            logger.debug("Pacing: sleeping %.1fs before next request", delay)
            self.sleep(delay)


def default_delay(uses_verified_citations: bool, request_delay: float = DEFAULT_REQUEST_DELAY) -> FixedDelay:
    if uses_verified_citations:
        return FixedDelay(min(request_delay, VERIFIED_CITATION_REQUEST_DELAY))
    return FixedDelay(request_delay)
