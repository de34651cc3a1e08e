"""Bounded retry with exponential backoff for outbound calls.

Example:
    >>> from clawview.execution.retry import ExponentialBackoff, RetryContext
    >>>
    >>> ctx = RetryContext(ExponentialBackoff(max_retries=2, base_delay=0.5))
    >>> response = ctx.run(post_batch, payload)
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from clawview.core.errors import is_retryable

T = TypeVar("T")


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0 = first retry)."""
        ...

    @abstractmethod
    def should_retry(self, retries_done: int, error: Exception | None = None) -> bool:
        """True if another attempt is allowed after ``retries_done`` retries."""
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) +/- jitter

    Only errors that ``is_retryable`` accepts are retried; a sink answering
    4xx fails immediately.

    Attributes:
        max_retries: Retries after the first attempt
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness to spread out concurrent retries
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    max_retries: int = 2
    base_delay: float = 0.5
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.multiplier**attempt), self.max_delay)
        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
        return delay

    def should_retry(self, retries_done: int, error: Exception | None = None) -> bool:
        if retries_done >= self.max_retries:
            return False
        return error is None or is_retryable(error)


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail immediately."""

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, retries_done: int, error: Exception | None = None) -> bool:
        return False


@dataclass
class RetryContext:
    """Runs a callable under a strategy and keeps the attempt history.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=2))
        >>> result = ctx.run(lambda: call_sink())
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, Exception, float], None] | None = None
    sleep: Callable[[float], None] = time.sleep
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    started_at: datetime = field(default_factory=utcnow, init=False)
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        return self.attempt

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` until it succeeds or the strategy gives up.

        Raises:
            The last exception once retries are exhausted or the error is
            not retryable.
        """
        while True:
            self.attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utcnow()))
                retries_done = self.attempt - 1
                if not self.strategy.should_retry(retries_done, e):
                    raise
                delay = self.strategy.next_delay(retries_done)
                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)
                self.sleep(delay)


__all__ = ["RetryStrategy", "ExponentialBackoff", "NoRetry", "RetryContext"]
