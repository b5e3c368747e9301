"""
Backoff policy, retry loop and derived metrics
"""
import pytest

from app.core.retry import RetryPolicy, is_retryable_http_status, retry_async
from app.services import metrics

from tests.fakes import no_sleep


def test_delay_grows_and_caps():
    policy = RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=10.0)
    assert [policy.delay_for(i) for i in range(4)] == [2.0, 4.0, 8.0, 10.0]
    assert policy.delay_for(-1) == 2.0


async def test_retry_until_success():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    result = await retry_async(flaky, RetryPolicy(5), lambda e: True, sleep=no_sleep)
    assert result == "ok"
    assert len(calls) == 3


async def test_non_retryable_error_raises_immediately():
    calls = []

    async def broken():
        calls.append(1)
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await retry_async(broken, RetryPolicy(5), lambda e: isinstance(e, ConnectionError), sleep=no_sleep)
    assert len(calls) == 1


async def test_gives_up_after_max_attempts():
    calls = []

    async def always_down():
        calls.append(1)
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        await retry_async(always_down, RetryPolicy(2), lambda e: True, sleep=no_sleep)
    assert len(calls) == 3


def test_retryable_http_status():
    assert is_retryable_http_status(429)
    assert is_retryable_http_status(503)
    assert not is_retryable_http_status(400)


def test_zero_denominators():
    assert metrics.safe_div(10, 0) == 0.0
    assert metrics.pct(5, None) == 0.0
    assert metrics.roas(100, 0) == 0.0
    assert metrics.mer(50, 0) == 0.0


def test_pct_change():
    assert metrics.pct_change(150, 100) == 50.0
    assert metrics.pct_change(10, 0) == 100.0
    assert metrics.pct_change(0, 0) == 0.0
    assert metrics.pct_change(50, 100) == -50.0


def test_contribution_margins():
    assert metrics.cm2(1000, 400, 100) == 500
    assert metrics.cm3(1000, 400, 50, 100) == 450
    assert metrics.round2("12.3456") == 12.35
    assert metrics.round2(None) == 0.0
