"""Tests for the linear-backoff retry helper."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from depextract.services.pipeline.errors import (
    ClassifiedPipelineError,
    ErrorCategory,
    JobCancelled,
    ToolNotFoundError,
)
from depextract.services.pipeline.retry import with_retry


def _flaky(failures, result="ok"):
    calls = {"n": 0}

    async def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise RuntimeError(f"failure {calls['n']}")
        return result

    return operation, calls


class TestWithRetry:
    def test_returns_first_success(self):
        operation, calls = _flaky(0)
        assert asyncio.run(with_retry(operation, "op", max_attempts=3, base_delay=0)) == "ok"
        assert calls["n"] == 1

    def test_retries_until_success(self):
        operation, calls = _flaky(2)
        assert asyncio.run(with_retry(operation, "op", max_attempts=3, base_delay=0)) == "ok"
        assert calls["n"] == 3

    def test_last_error_propagates(self):
        operation, calls = _flaky(5)
        with pytest.raises(RuntimeError, match="failure 3"):
            asyncio.run(with_retry(operation, "op", max_attempts=3, base_delay=0))
        assert calls["n"] == 3

    def test_linear_backoff(self):
        operation, _ = _flaky(2)
        with patch("depextract.services.pipeline.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            asyncio.run(with_retry(operation, "op", max_attempts=3, base_delay=2.0))
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    def test_on_retry_hook(self):
        operation, _ = _flaky(1)
        hook = AsyncMock()
        asyncio.run(with_retry(operation, "op", max_attempts=2, base_delay=0, on_retry=hook))
        attempt, error = hook.await_args.args
        assert attempt == 1
        assert str(error) == "failure 1"

    @pytest.mark.parametrize(
        "error",
        [
            JobCancelled(),
            ClassifiedPipelineError(ErrorCategory.AUTHENTICATION, "auth"),
            ToolNotFoundError("git", "git not installed"),
        ],
    )
    def test_non_retryable_errors(self, error):
        operation = AsyncMock(side_effect=error)
        with pytest.raises(type(error)):
            asyncio.run(with_retry(operation, "op", max_attempts=3, base_delay=0))
        assert operation.await_count == 1

    def test_at_least_one_attempt(self):
        operation, calls = _flaky(0)
        asyncio.run(with_retry(operation, "op", max_attempts=0, base_delay=0))
        assert calls["n"] == 1
