"""
Tests for retry and cancel-on-supersede helpers.
"""

import asyncio

import pytest

from team_availability.integrations import DataSourceError
from team_availability.retry import (
    LatestOnlyLoader,
    RetryExhaustedError,
    RetryPolicy,
    SupersededError,
    backoff_delay,
)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestBackoff:
    """Tests for the backoff schedule."""

    def test_doubles_until_cap(self):
        """Test min(base * 2^(n-1), cap)."""
        delays = [backoff_delay(n, base=1.0, cap=30.0) for n in range(1, 8)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_invalid_attempt(self):
        with pytest.raises(ValueError):
            backoff_delay(0)

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRetryPolicy:
    """Tests for running operations with retries."""

    def test_success_first_try(self):
        sleep = RecordingSleep()

        async def operation():
            return "ok"

        assert asyncio.run(RetryPolicy().run(operation, sleep=sleep)) == "ok"
        assert sleep.delays == []

    def test_recovers_after_transient_errors(self):
        """Test two failures then success."""
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise DataSourceError("connection reset")
            return "ok"

        result = asyncio.run(RetryPolicy(max_attempts=3, base_delay=0.5).run(operation, sleep=sleep))

        assert result == "ok"
        assert len(attempts) == 3
        assert sleep.delays == [0.5, 1.0]

    def test_exhausted(self):
        """Test that the last error is carried on exhaustion."""
        sleep = RecordingSleep()

        async def operation():
            raise DataSourceError("still down")

        with pytest.raises(RetryExhaustedError) as excinfo:
            asyncio.run(RetryPolicy(max_attempts=4).run(operation, sleep=sleep))

        assert excinfo.value.attempts == 4
        assert isinstance(excinfo.value.last_error, DataSourceError)
        assert sleep.delays == [1.0, 2.0, 4.0]

    def test_timeout_is_retryable(self):
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) == 1:
                raise asyncio.TimeoutError()
            return 7

        assert asyncio.run(RetryPolicy().run(operation, sleep=sleep)) == 7

    def test_non_retryable_error_propagates(self):
        """Test that programming errors are not retried."""
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            raise KeyError("member")

        with pytest.raises(KeyError):
            asyncio.run(RetryPolicy().run(operation, sleep=sleep))
        assert len(attempts) == 1
        assert sleep.delays == []


class TestLatestOnlyLoader:
    """Tests for cancel-on-supersede loading."""

    def test_single_load(self):
        async def load(key):
            return f"team {key}"

        async def scenario():
            loader = LatestOnlyLoader(load)
            result = await loader.load(1)
            return result, loader.current_key

        assert asyncio.run(scenario()) == ("team 1", 1)

    def test_newer_load_supersedes_older(self):
        """Test that switching teams cancels the earlier load."""
        started = []
        finished = []

        async def load(key):
            started.append(key)
            await asyncio.sleep(0.05)
            finished.append(key)
            return f"team {key}"

        async def scenario():
            loader = LatestOnlyLoader(load)
            first = asyncio.ensure_future(loader.load(1))
            await asyncio.sleep(0.01)
            second = await loader.load(2)
            with pytest.raises(SupersededError):
                await first
            return second

        assert asyncio.run(scenario()) == "team 2"
        assert started == [1, 2]
        assert finished == [2]

    def test_caller_cancellation_is_not_superseded(self):
        """Test that cancelling the caller itself still raises CancelledError."""
        async def load(key):
            await asyncio.sleep(1)

        async def scenario():
            loader = LatestOnlyLoader(load)
            pending = asyncio.ensure_future(loader.load(1))
            await asyncio.sleep(0.01)
            pending.cancel()
            with pytest.raises(asyncio.CancelledError):
                await pending

        asyncio.run(scenario())
