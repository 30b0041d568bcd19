"""Tests for repo_planner/utils/retry.py."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from repo_planner.exceptions import AIResponseError, ExternalServiceError, NotFoundError
from repo_planner.utils.retry import backoff_delay, is_transient, retry_async


@pytest.fixture
def no_sleep():
    sleep = AsyncMock()
    with patch("repo_planner.utils.retry.asyncio.sleep", sleep):
        yield sleep


class TestIsTransient:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ExternalServiceError("rate limited", status_code=429), True),
            (ExternalServiceError("bad gateway", status_code=502), True),
            (ExternalServiceError("network"), True),
            (ExternalServiceError("unauthorized", status_code=401), False),
            (AIResponseError("no json"), True),
            (asyncio.TimeoutError(), True),
            (ConnectionResetError(), True),
            (NotFoundError("gone"), False),
            (ValueError("bug"), False),
        ],
    )
    def test_classification(self, error, expected):
        assert is_transient(error) is expected


class TestBackoff:
    def test_doubles(self):
        assert [backoff_delay(attempt, 1.0) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, no_sleep):
        func = AsyncMock(side_effect=[ExternalServiceError("429", status_code=429), "ok"])

        result = await retry_async(func, max_attempts=3, base_delay=1.0, retry_if=is_transient)

        assert result == "ok"
        assert func.await_count == 2
        no_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self, no_sleep):
        func = AsyncMock(side_effect=ExternalServiceError("down", status_code=503))

        with pytest.raises(ExternalServiceError, match="down"):
            await retry_async(func, max_attempts=3, base_delay=0.5)

        assert func.await_count == 3
        assert [call.args[0] for call in no_sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_non_transient_is_not_retried(self, no_sleep):
        func = AsyncMock(side_effect=ExternalServiceError("forbidden", status_code=401))

        with pytest.raises(ExternalServiceError):
            await retry_async(func, max_attempts=3, retry_if=is_transient)

        assert func.await_count == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_uncaught_type_propagates(self, no_sleep):
        func = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await retry_async(func, max_attempts=3, exceptions=(ExternalServiceError,))

        assert func.await_count == 1
