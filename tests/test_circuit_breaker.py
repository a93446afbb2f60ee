"""Tests for the counter store circuit breaker."""

from __future__ import annotations

import pytest

from crowdplay.exceptions import RemoteUnavailableError
from crowdplay.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError, CircuitState


async def fail(breaker: CircuitBreaker) -> None:
    with pytest.raises(RemoteUnavailableError):
        async with breaker:
            raise RemoteUnavailableError("down")


async def test_opens_after_threshold_and_fails_fast() -> None:
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

    await fail(breaker)
    assert breaker.state is CircuitState.CLOSED
    await fail(breaker)
    assert breaker.state is CircuitState.OPEN

    with pytest.raises(CircuitBreakerError):
        async with breaker:
            pass


async def test_half_open_probe_closes_on_success() -> None:
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
    await fail(breaker)
    assert breaker.state is CircuitState.OPEN

    async with breaker:
        pass

    assert breaker.state is CircuitState.CLOSED


async def test_half_open_probe_failure_reopens() -> None:
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
    await fail(breaker)

    await fail(breaker)

    assert breaker.state is CircuitState.OPEN


async def test_ignored_exceptions_do_not_count() -> None:
    breaker = CircuitBreaker(
        failure_threshold=1, counts_as_failure=lambda e: not isinstance(e, KeyError)
    )

    with pytest.raises(KeyError):
        async with breaker:
            raise KeyError("x")

    assert breaker.state is CircuitState.CLOSED
