"""Retry strategies and an async retry runner.

Only scheduler startup is retried; every other failure is surfaced on first
occurrence.  The startup policy is :func:`startup_retry_policy`: three
retries after the initial attempt, waiting 1s, 2s and 3s.

Example:
    >>> strategy = LinearBackoff(max_retries=3, base_delay=1.0, increment=1.0)
    >>> [strategy.next_delay(attempt) for attempt in range(3)]
    [1.0, 2.0, 3.0]
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from jobdeck.core.errors import OperationCancelledError

T = TypeVar("T")

STARTUP_RETRY_ATTEMPTS = 3


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before the next retry.

        Args:
            attempt: Zero-based retry number (0 = first retry)

        Returns:
            Delay in seconds before the next attempt
        """
        ...

    @abstractmethod
    def should_retry(self, failures: int, error: BaseException | None = None) -> bool:
        """Determine if another attempt should be made.

        Args:
            failures: Number of failed attempts so far (1 after the first failure)
            error: The exception that caused the latest failure
        """
        ...


@dataclass
class LinearBackoff(RetryStrategy):
    """Linear backoff strategy.

    Delay = base_delay + (increment * attempt)
    """

    max_retries: int = 3
    base_delay: float = 1.0
    increment: float = 1.0
    max_delay: float = 30.0

    def next_delay(self, attempt: int) -> float:
        """Calculate linear backoff delay."""
        return min(
            self.base_delay + (self.increment * attempt),
            self.max_delay,
        )

    def should_retry(self, failures: int, error: BaseException | None = None) -> bool:
        """Retry while fewer than ``max_retries`` retries have been made."""
        return failures <= self.max_retries


def startup_retry_policy() -> LinearBackoff:
    """The fixed policy used for scheduler initialization (1s, 2s, 3s)."""
    return LinearBackoff(max_retries=STARTUP_RETRY_ATTEMPTS, base_delay=1.0, increment=1.0)


@dataclass
class RetryContext:
    """Tracks retry state and runs an async action under a strategy.

    Example:
        >>> ctx = RetryContext(startup_retry_policy())
        >>> await ctx.run(initialize_scheduler)
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, BaseException, float], None] | None = None
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    attempt: int = field(default=0, init=False)
    last_error: BaseException | None = field(default=None, init=False)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.attempt

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        cancel: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> T:
        """Await *func* until it succeeds or the strategy gives up.

        Args:
            func: Async function to execute
            cancel: Optional event; once set, no further attempt is made
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Result from the successful call

        Raises:
            The last exception once retries are exhausted, or
            OperationCancelledError when *cancel* is set.
        """
        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError(
                    f"Cancelled before attempt {self.attempt + 1}", cause=self.last_error
                )

            self.attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self.last_error = e

                if not self.strategy.should_retry(self.attempt, e):
                    raise

                delay = self.strategy.next_delay(self.attempt - 1)

                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)

                await self._pause(delay, cancel)

    async def _pause(self, delay: float, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await self.sleep(delay)
            return
        sleeper = asyncio.ensure_future(self.sleep(delay))
        waiter = asyncio.ensure_future(cancel.wait())
        done, pending = await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if waiter not in done:
            return
        raise OperationCancelledError(
            f"Cancelled while waiting to retry after attempt {self.attempt}",
            cause=self.last_error,
        )
