"""
Circuit breaker guarding calls to the remote counter store.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Optional

from crowdplay.exceptions import RemoteUnavailableError

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half_open"  # Testing if the store recovered


class CircuitBreakerError(RemoteUnavailableError):
    """Raised instead of issuing a request while the circuit is open."""


def _always(exc: BaseException) -> bool:
    return True


class CircuitBreaker:
    """
    Circuit breaker to stop hammering a store that is down.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, requests fail fast
    - HALF_OPEN: Testing recovery, the next requests decide
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        success_threshold: int = 1,
        counts_as_failure: Callable[[BaseException], bool] = _always,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening the circuit
            recovery_timeout: Seconds to wait before letting a probe through
            success_threshold: Consecutive successes needed to close the circuit
            counts_as_failure: Decides whether an exception trips the breaker.
                Exceptions it rejects pass through without affecting the state.
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._counts_as_failure = counts_as_failure

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    def _check_state(self) -> None:
        """Moves from OPEN to HALF_OPEN once the recovery timeout has elapsed."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return

        elapsed = time.monotonic() - self._last_failure_time
        if elapsed >= self.recovery_timeout:
            log.info(
                f"[yellow]Counter store circuit half-open "
                f"(probing after {elapsed:.0f}s)[/yellow]"
            )
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0

    async def _on_success(self) -> None:
        async with self._lock:
            self._failure_count = 0

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    log.info("[green]✓ Counter store reachable again.[/green]")
                    self._state = CircuitState.CLOSED
                    self._success_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                log.warning(
                    "[yellow]Counter store probe failed. Circuit open again.[/yellow]"
                )
                self._state = CircuitState.OPEN
                self._failure_count = 0
                self._success_count = 0

            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                log.error(
                    f"[red]✗ Counter store circuit opened after "
                    f"{self._failure_count} consecutive failures. "
                    f"Requests fail fast for {self.recovery_timeout}s.[/red]"
                )
                self._state = CircuitState.OPEN

    def reset(self) -> None:
        """Forces the circuit back to CLOSED."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None

    async def __aenter__(self):
        async with self._lock:
            self._check_state()
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerError(
                    f"Counter store marked unavailable. Will retry after "
                    f"{self.recovery_timeout} seconds."
                )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            await self._on_success()
        elif self._counts_as_failure(exc_val):
            await self._on_failure()
        else:
            await self._on_success()
        return False
