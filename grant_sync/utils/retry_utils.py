"""Reusable retry policy for async operations.

A :class:`RetryPolicy` bundles the retry decisions (attempt cap, backoff,
jitter, which errors are worth retrying, and per-error delay hints such as
``Retry-After``) so call sites compose it instead of hand-writing loops.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from grant_sync.core.backoff import backoff_delay

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always_retry(_exc: BaseException) -> bool:
    return True


def _no_delay_hint(_exc: BaseException) -> float | None:
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """Retry an async callable with exponential backoff.

    Attributes:
        max_attempts: Total attempts including the first call.
        base_delay: Delay after the first failure, in seconds.
        factor: Backoff multiplier per failed attempt.
        max_delay: Cap for a single computed delay, in seconds.
        jitter: Relative jitter applied to computed delays.
        retryable: Predicate deciding whether an error may be retried.
        delay_hint: Returns a server-provided delay (seconds) for an error,
            or None to fall back to the computed backoff.
        sleep: Awaitable sleep function, replaceable in tests.
    """

    max_attempts: int = 3
    base_delay: float = 0.2
    factor: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.0
    retryable: Callable[[BaseException], bool] = field(default=_always_retry)
    delay_hint: Callable[[BaseException], float | None] = field(default=_no_delay_hint)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)

    def compute_delay(self, attempt: int, error: BaseException | None = None) -> float:
        """Delay to wait after ``attempt`` (1-indexed) failed with ``error``."""
        if error is not None:
            hinted = self.delay_hint(error)
            if hinted is not None:
                return max(0.0, hinted)
        return backoff_delay(
            attempt,
            base_delay=self.base_delay,
            factor=self.factor,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        operation_name: str = "operation",
        log_extra: dict[str, object] | None = None,
    ) -> T:
        """Call ``func`` until it succeeds, fails permanently, or attempts run out.

        The last error is re-raised unchanged, so callers keep its category.
        """
        extra = dict(log_extra or {})
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await func()
            except Exception as exc:
                if not self.retryable(exc):
                    logger.debug(
                        "retry_non_retryable_error",
                        extra={
                            **extra,
                            "operation": operation_name,
                            "attempt": attempt,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise
                if attempt >= self.max_attempts:
                    logger.warning(
                        "retry_exhausted",
                        extra={
                            **extra,
                            "operation": operation_name,
                            "attempts": attempt,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise

                delay = self.compute_delay(attempt, exc)
                logger.info(
                    "retry_scheduled",
                    extra={
                        **extra,
                        "operation": operation_name,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "delay_seconds": round(delay, 3),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                await self.sleep(delay)
                continue

            if attempt > 1:
                logger.info(
                    "retry_succeeded",
                    extra={**extra, "operation": operation_name, "attempts": attempt},
                )
            return result
