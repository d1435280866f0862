import pytest
from unittest.mock import AsyncMock

from catalog_sync.core.exceptions import (
    RetryExhaustedError,
    TransientVendorError,
    VendorAuthenticationError,
)
from catalog_sync.services.retry import RetryPolicy


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.mark.asyncio
async def test_returns_first_success(sleep):
    """Test no waiting happens when the first attempt succeeds"""
    func = AsyncMock(return_value="feed")
    policy = RetryPolicy(sleep=sleep)

    assert await policy.call(func, "creds", since=None) == "feed"
    func.assert_awaited_once_with("creds", since=None)
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retries_transient_with_backoff(sleep):
    """Test transient errors are retried with the configured delays"""
    func = AsyncMock(side_effect=[TransientVendorError("timeout"), TransientVendorError("timeout"), "feed"])
    policy = RetryPolicy(max_attempts=3, delays=(5, 10), sleep=sleep)

    assert await policy.call(func) == "feed"
    assert func.await_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [5, 10]


@pytest.mark.asyncio
async def test_exhausted_raises_with_last_error(sleep):
    """Test the last transient error is attached once attempts run out"""
    errors = [TransientVendorError(f"connection refused #{n}") for n in range(1, 4)]
    func = AsyncMock(side_effect=errors)
    policy = RetryPolicy(max_attempts=3, delays=(5, 10), sleep=sleep)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await policy.call(func, description="acme feed fetch", vendor_slug="acme", tenant_id="t1")

    error = exc_info.value
    assert error.attempts == 3
    assert error.last_error is errors[-1]
    assert error.__cause__ is errors[-1]
    assert error.vendor_slug == "acme"
    assert "connection refused #3" in str(error)
    # no sleep after the final attempt
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_non_transient_errors_not_retried(sleep):
    """Test authentication failures surface on the first attempt"""
    func = AsyncMock(side_effect=VendorAuthenticationError("bad password"))
    policy = RetryPolicy(sleep=sleep)

    with pytest.raises(VendorAuthenticationError):
        await policy.call(func)
    func.assert_awaited_once()
    sleep.assert_not_awaited()


def test_last_delay_repeats():
    policy = RetryPolicy(max_attempts=5, delays=(5, 10))
    assert [policy.delay_for(n) for n in range(1, 5)] == [5, 10, 10, 10]
    assert RetryPolicy(delays=()).delay_for(1) == 0.0


def test_from_settings(settings):
    policy = RetryPolicy.from_settings(settings)
    assert policy.max_attempts == 3
    assert policy.delays == (5.0, 10.0)


def test_invalid_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
