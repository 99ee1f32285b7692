"""
Retry and Cancellation Helpers

Bounded exponential backoff for remote reads, and a loader that cancels an
in-flight load when a newer one replaces it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional

from .integrations import DataSourceError


logger = logging.getLogger(__name__)


class RetryExhaustedError(Exception):
    """Every attempt failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class SupersededError(Exception):
    """A load was cancelled because a newer load replaced it."""

    def __init__(self, key: Hashable):
        super().__init__(f"Load for {key!r} was superseded")
        self.key = key


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """
    Delay before retry number ``attempt`` (1-based).

    delay = min(base * 2 ** (attempt - 1), cap)
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return min(base * 2 ** (attempt - 1), cap)


@dataclass
class RetryPolicy:
    """Bounded exponential backoff."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retry_on: tuple = (DataSourceError, asyncio.TimeoutError)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        label: str = "operation"
    ) -> Any:
        """
        Run ``operation`` until it succeeds or attempts run out.

        Errors outside ``retry_on`` propagate immediately.

        Raises:
            RetryExhaustedError: after ``max_attempts`` retryable failures
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.error("%s failed after %d attempt(s): %s", label, attempt, e)
                    raise RetryExhaustedError(attempt, e) from e

                delay = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label, attempt, self.max_attempts, delay, e
                )
                await sleep(delay)


class LatestOnlyLoader:
    """
    Runs one load at a time; starting a new load cancels the previous one.

    Usage:
        loader = LatestOnlyLoader(lambda team: resolver.team_status(team, today))
        status = await loader.load(team)
    """

    def __init__(self, loader: Callable[[Hashable], Awaitable[Any]]):
        self._loader = loader
        self._current: Optional[asyncio.Task] = None
        self._current_key: Optional[Hashable] = None

    @property
    def current_key(self) -> Optional[Hashable]:
        return self._current_key

    async def load(self, key: Hashable) -> Any:
        """
        Load ``key``, superseding any load still in flight.

        Raises:
            SupersededError: if a later call replaced this one before it finished
        """
        previous = self._current
        if previous is not None and not previous.done():
            logger.debug("Cancelling load for %r, superseded by %r", self._current_key, key)
            previous.cancel()

        task = asyncio.ensure_future(self._loader(key))
        self._current = task
        self._current_key = key

        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._current is not task:
                raise SupersededError(key) from None
            raise
