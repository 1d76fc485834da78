"""Circuit breaker for calls to the upstream Vinnova API."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from grant_sync.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failures exceeded threshold, blocking requests
    HALF_OPEN = "half_open"  # Probing whether the dependency recovered


class CircuitBreakerOpenError(Exception):
    """Raised when a call is short-circuited by an open breaker."""

    def __init__(self, name: str, retry_in: float) -> None:
        super().__init__(f"Circuit breaker '{name}' is open")
        self.name = name
        self.retry_in = retry_in


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    States:
    - CLOSED: calls pass through; ``failure_threshold`` consecutive failures open it.
    - OPEN: calls are rejected with :class:`CircuitBreakerOpenError` until
      ``cooldown`` seconds have elapsed since it opened.
    - HALF_OPEN: calls pass through as probes; ``success_threshold``
      consecutive successes close it, any failure reopens it with a fresh cooldown.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown: float = 15.0,
        success_threshold: int = 1,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening the circuit
            cooldown: Seconds to hold the circuit open before probing
            success_threshold: Consecutive probe successes needed to close
            name: Identifier used in logs and errors
            clock: Monotonic time source in seconds
        """
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.success_threshold = success_threshold
        self.name = name
        self._clock = clock

        self.failure_count = 0
        self.success_count = 0
        self.state = CircuitState.CLOSED
        self.opened_at: float | None = None

    def can_proceed(self) -> bool:
        """Return True if a call may go through, moving OPEN to HALF_OPEN after the cooldown."""
        if self.state != CircuitState.OPEN:
            return True

        if self.opened_at is not None and self._clock() - self.opened_at >= self.cooldown:
            logger.info(
                "circuit_breaker_half_open",
                extra={"breaker": self.name, "failure_count": self.failure_count},
            )
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            return True

        return False

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info(
                    "circuit_breaker_closed",
                    extra={
                        "breaker": self.name,
                        "success_count": self.success_count,
                        "previous_failures": self.failure_count,
                    },
                )
                self._close()
            return

        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(
                "circuit_breaker_reopened",
                extra={"breaker": self.name, "failure_count": self.failure_count},
            )
            self._open()
            return

        if self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            logger.warning(
                "circuit_breaker_opened",
                extra={
                    "breaker": self.name,
                    "failure_count": self.failure_count,
                    "threshold": self.failure_threshold,
                    "cooldown_seconds": self.cooldown,
                },
            )
            self._open()

    def reset(self) -> None:
        logger.info(
            "circuit_breaker_reset",
            extra={"breaker": self.name, "previous_state": self.state.value},
        )
        self._close()

    def _open(self) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()
        self.success_count = 0

    def _close(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None

    def _retry_in(self) -> float:
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.cooldown - (self._clock() - self.opened_at))

    def get_stats(self) -> dict[str, Any]:
        """Get current circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "cooldown": self.cooldown,
            "opened_at": self.opened_at,
        }

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute ``func`` protected by the breaker.

        Raises:
            CircuitBreakerOpenError: If the circuit is open; ``func`` is not called.
            Exception: Whatever ``func`` raised, after the failure is recorded.
        """
        if not self.can_proceed():
            raise CircuitBreakerOpenError(self.name, self._retry_in())

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result


class CircuitBreakerRegistry:
    """Owns one breaker per (entity, call site) pair."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._breakers: dict[tuple[str, str], CircuitBreaker] = {}

    def get(self, entity: str, call_site: str) -> CircuitBreaker:
        key = (entity, call_site)
        breaker = self._breakers.get(key)
        if breaker is None:
            if self._config is not None:
                breaker = CircuitBreaker(
                    failure_threshold=self._config.failure_threshold,
                    cooldown=self._config.timeout_seconds,
                    success_threshold=self._config.success_threshold,
                    name=f"{entity}:{call_site}",
                    clock=self._clock,
                )
            else:
                breaker = CircuitBreaker(name=f"{entity}:{call_site}", clock=self._clock)
            self._breakers[key] = breaker
        return breaker

    def get_stats(self) -> list[dict[str, Any]]:
        return [breaker.get_stats() for breaker in self._breakers.values()]
