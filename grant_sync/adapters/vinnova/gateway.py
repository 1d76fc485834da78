"""Read path that degrades to cached data when Vinnova is failing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from grant_sync.adapters.vinnova.cache import ResponseCache, make_cache_key
from grant_sync.adapters.vinnova.exceptions import UpstreamUnavailableError, is_fetch_retryable
from grant_sync.utils.circuit_breaker import CircuitBreakerOpenError, CircuitBreakerRegistry
from grant_sync.utils.retry_utils import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping

    from grant_sync.adapters.vinnova.client import VinnovaClient

logger = logging.getLogger(__name__)

STALE_WARNING = "Data may be outdated due to upstream issues."
STALE_CACHE_TTL_SEC = 300.0


@dataclass(frozen=True)
class GatewayResponse:
    data: Any
    stale: bool = False
    warning: str | None = None


class VinnovaReadGateway:
    """Fetch Vinnova pages through a breaker, serving a recent copy when it trips.

    Successful responses are cached for ``STALE_CACHE_TTL_SEC``. When the
    upstream call fails the cached copy is returned with ``stale=True``; when
    nothing is cached an open breaker surfaces as
    :class:`UpstreamUnavailableError` (503) and any other error propagates.
    """

    def __init__(
        self,
        client: VinnovaClient,
        breakers: CircuitBreakerRegistry | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self.client = client
        self.breakers = breakers if breakers is not None else CircuitBreakerRegistry()
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=3, base_delay=0.2, retryable=is_fetch_retryable
        )
        self.cache = cache if cache is not None else ResponseCache(STALE_CACHE_TTL_SEC)

    async def fetch(
        self, endpoint: str, params: Mapping[str, Any] | None = None
    ) -> GatewayResponse:
        breaker = self.breakers.get(endpoint.strip("/"), "read")
        cache_key = make_cache_key("GET", endpoint, params)

        async def _fetch_with_retry() -> Any:
            return await self.retry_policy.run(
                lambda: self.client.get_page(endpoint, params),
                operation_name="vinnova_read",
                log_extra={"endpoint": endpoint},
            )

        try:
            data = await breaker.call(_fetch_with_retry)
        except CircuitBreakerOpenError as exc:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return self._stale(endpoint, cached, exc)
            logger.error(
                "vinnova_upstream_unavailable",
                extra={"endpoint": endpoint, "retry_in": round(exc.retry_in, 3)},
            )
            raise UpstreamUnavailableError(
                "Vinnova API temporarily unavailable due to repeated failures. "
                "Please try again later.",
                retry_in=exc.retry_in,
            ) from exc
        except Exception as exc:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return self._stale(endpoint, cached, exc)
            raise

        self.cache.set(cache_key, data)
        return GatewayResponse(data=data)

    def _stale(self, endpoint: str, cached: Any, exc: Exception) -> GatewayResponse:
        logger.warning(
            "vinnova_serving_stale_cache",
            extra={
                "endpoint": endpoint,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return GatewayResponse(data=cached, stale=True, warning=STALE_WARNING)
