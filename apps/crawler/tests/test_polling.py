"""Tests for bounded polling and backoff delays."""

from __future__ import annotations

import pytest

from hotel_scanner_crawler.polling import poll_until
from hotel_scanner_crawler.retry import async_retry, backoff_delay


async def test_poll_returns_first_value():
    calls = []

    def predicate():
        calls.append(1)
        return "ready" if len(calls) == 3 else None

    assert await poll_until(predicate, interval=0, max_attempts=5) == "ready"
    assert len(calls) == 3


async def test_poll_accepts_async_predicates():
    async def predicate():
        return 0

    assert await poll_until(predicate, interval=0, max_attempts=1) == 0


async def test_poll_gives_up_after_max_attempts():
    calls = []

    def predicate():
        calls.append(1)

    assert await poll_until(predicate, interval=0, max_attempts=4) is None
    assert len(calls) == 4


def test_backoff_delay_is_capped():
    assert backoff_delay(0, base_delay=1.0, jitter=False) == 1.0
    assert backoff_delay(3, base_delay=1.0, jitter=False) == 8.0
    assert backoff_delay(10, base_delay=1.0, max_delay=30.0, jitter=False) == 30.0
    assert 0.5 <= backoff_delay(0, base_delay=1.0) <= 1.5


async def test_async_retry_reraises_last_error():
    attempts = []

    @async_retry(max_retries=2, base_delay=0.0, exceptions=(ValueError,))
    async def flaky():
        attempts.append(1)
        raise ValueError(f"attempt {len(attempts)}")

    with pytest.raises(ValueError, match="attempt 3"):
        await flaky()
    assert len(attempts) == 3
