"""Vinnova open-data API client."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from grant_sync.adapters.vinnova.auth import VinnovaTokenProvider
from grant_sync.adapters.vinnova.cache import ResponseCache, make_cache_key
from grant_sync.adapters.vinnova.exceptions import (
    VinnovaApiError,
    VinnovaAuthError,
    VinnovaClientError,
    VinnovaNetworkError,
    VinnovaRateLimitError,
    VinnovaServerError,
    is_retryable,
    retry_after_hint,
)
from grant_sync.utils.retry_utils import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from typing import Self

    from grant_sync.config import VinnovaConfig

logger = logging.getLogger(__name__)

UTLYSNINGAR_ENDPOINT = "/utlysningar"
ANSOKNINGAR_ENDPOINT = "/ansokningar"
FINANSIERADE_AKTIVITETER_ENDPOINT = "/finansieradeaktiviteter"

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BASE_DELAY = 2.0  # seconds; doubles per attempt (2s, 4s, 8s)
DEFAULT_MAX_DELAY = 60.0


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds; HTTP dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def extract_results(payload: Any) -> list[Any]:
    """Return the record list from a ``{results, totalRecords}`` envelope or a bare list."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        results = payload.get("results")
        if isinstance(results, list):
            return results
    return []


class VinnovaClient:
    """Async HTTP client for the Vinnova open-data API.

    Every request is retried on network errors, timeouts, 5xx and 429
    responses with exponential backoff (``Retry-After`` wins for 429).
    Authentication failures and other 4xx responses fail immediately.
    Successful GET bodies can be cached per (method, url, params).
    """

    def __init__(
        self,
        base_url: str,
        subscription_key: str = "",
        timeout: float = 15.0,
        *,
        token_provider: VinnovaTokenProvider | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        cache: ResponseCache | None = None,
        page_size: int = 100,
        max_pages: int = 100,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the Vinnova client.

        Args:
            base_url: API root, e.g. ``https://data.vinnova.se/api``
            subscription_key: Value for the ``Ocp-Apim-Subscription-Key`` header
            timeout: Request timeout in seconds
            token_provider: Bearer token source when OAuth2 is enabled
            max_attempts: Total attempts per request
            retry_base_delay: Delay after the first failed attempt
            retry_max_delay: Upper bound for a single backoff delay
            cache: GET response cache (a 120 s cache is created when omitted)
            page_size: Default ``limit`` for pagination helpers
            max_pages: Default page cap for :meth:`get_all_pages`
            http_client: Pre-built httpx client, used as-is and not closed here
            sleep: Sleep function used between retries
        """
        self.base_url = base_url.rstrip("/")
        self.subscription_key = subscription_key
        self.timeout = timeout
        self.token_provider = token_provider
        self.page_size = page_size
        self.max_pages = max_pages
        self.cache = cache if cache is not None else ResponseCache()
        self.retry_policy = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=retry_base_delay,
            factor=2.0,
            max_delay=retry_max_delay,
            retryable=is_retryable,
            delay_hint=retry_after_hint,
            sleep=sleep,
        )
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_config(
        cls,
        config: VinnovaConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> VinnovaClient:
        token_provider = VinnovaTokenProvider.from_config(config) if config.use_oauth2 else None
        return cls(
            config.api_base_url,
            config.subscription_key,
            config.timeout_sec,
            token_provider=token_provider,
            max_attempts=config.max_attempts,
            retry_base_delay=config.retry_base_delay_sec,
            cache=ResponseCache(config.cache_ttl_sec),
            page_size=config.page_size,
            max_pages=config.max_pages,
            http_client=http_client,
            sleep=sleep,
        )

    async def __aenter__(self) -> Self:
        """Enter async context."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client."""
        if self._client is None:
            raise VinnovaClientError("Client not initialized. Use async context manager.")
        return self._client

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _auth_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.subscription_key:
            headers["Ocp-Apim-Subscription-Key"] = self.subscription_key
        if self.token_provider is not None:
            token = await self.token_provider.get_token()
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        use_cache: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            VinnovaAuthError: 401/403, or the token could not be obtained
            VinnovaRateLimitError: 429 on every attempt
            VinnovaServerError: 5xx on every attempt
            VinnovaNetworkError: No response on every attempt
            VinnovaApiError: Other 4xx, or a body that is not JSON
        """
        method = method.upper()
        url = self._build_url(endpoint)
        cacheable = use_cache and method == "GET"
        cache_key = make_cache_key(method, url, params)

        if cacheable:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("vinnova_cache_hit", extra={"method": method, "url": url})
                return cached

        headers = await self._auth_headers()
        attempt = 0

        async def _send() -> Any:
            nonlocal attempt
            attempt += 1
            return await self._send_once(method, url, params, json, headers, attempt)

        try:
            data = await self.retry_policy.run(
                _send,
                operation_name=f"vinnova_{method.lower()}",
                log_extra={"url": url},
            )
        except VinnovaClientError as exc:
            logger.error(
                "vinnova_request_failed",
                extra={
                    "method": method,
                    "url": url,
                    "attempts": attempt,
                    "status_code": exc.status_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            if isinstance(exc, VinnovaAuthError) and self.token_provider is not None:
                self.token_provider.invalidate()
            raise

        if cacheable:
            self.cache.set(cache_key, data)
        return data

    async def _send_once(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any] | None,
        json: Any,
        headers: dict[str, str],
        attempt: int,
    ) -> Any:
        logger.debug(
            "vinnova_request_attempt",
            extra={"method": method, "url": url, "attempt": attempt, "params": dict(params or {})},
        )
        start = time.perf_counter()
        try:
            response = await self.client.request(
                method,
                url,
                params=dict(params) if params else None,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise VinnovaNetworkError(f"Timeout calling {url}") from exc
        except httpx.TransportError as exc:
            raise VinnovaNetworkError(f"Network error calling {url}: {exc}") from exc

        duration_ms = int((time.perf_counter() - start) * 1000)
        status = response.status_code
        logger.info(
            "vinnova_response",
            extra={
                "method": method,
                "url": url,
                "status_code": status,
                "attempt": attempt,
                "duration_ms": duration_ms,
            },
        )

        if status in (401, 403):
            raise VinnovaAuthError(
                "Unauthorized: invalid API key or credentials",
                status_code=status,
                data=_safe_body(response),
            )
        if status == 429:
            raise VinnovaRateLimitError(
                "Rate limited by Vinnova API",
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                data=_safe_body(response),
            )
        if status >= 500:
            raise VinnovaServerError(
                f"Server error: {status}", status_code=status, data=_safe_body(response)
            )
        if status >= 400:
            raise VinnovaApiError(
                f"Vinnova API error: {status}", status_code=status, data=_safe_body(response)
            )

        try:
            return response.json()
        except ValueError as exc:
            raise VinnovaApiError(
                "Vinnova API returned a non-JSON body", status_code=status
            ) from exc

    async def get(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", endpoint, params=params, use_cache=True)

    async def post(self, endpoint: str, json: Any, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("POST", endpoint, params=params, json=json)

    async def get_page(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        """Fetch a single (cached) page; the body is returned as-is."""
        return await self.request("GET", endpoint, params=params, use_cache=True)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
    ) -> list[Any]:
        """Fetch every page using ``limit``/``offset`` and concatenate the records.

        Stops on an empty or short page, or after ``max_pages`` pages.
        """
        page_size = page_size or self.page_size
        max_pages = max_pages or self.max_pages
        records: list[Any] = []
        offset = 0

        for _page in range(max_pages):
            page_params = {**dict(params or {}), "limit": page_size, "offset": offset}
            items = extract_results(await self.get_page(endpoint, page_params))
            if not items:
                break
            records.extend(items)
            if len(items) < page_size:
                break
            offset += page_size
        else:
            logger.warning(
                "vinnova_max_pages_reached",
                extra={"endpoint": endpoint, "max_pages": max_pages, "count": len(records)},
            )

        logger.info(
            "vinnova_fetched_all_pages",
            extra={"endpoint": endpoint, "count": len(records)},
        )
        return records

    async def get_utlysningar(self, params: Mapping[str, Any] | None = None) -> Any:
        """Fetch one page of calls for proposals."""
        return await self.get_page(UTLYSNINGAR_ENDPOINT, params)

    async def get_ansokningar(self, params: Mapping[str, Any] | None = None) -> Any:
        """Fetch one page of applications."""
        return await self.get_page(ANSOKNINGAR_ENDPOINT, params)

    async def get_finansierade_aktiviteter(self, params: Mapping[str, Any] | None = None) -> Any:
        """Fetch one page of funded activities."""
        return await self.get_page(FINANSIERADE_AKTIVITETER_ENDPOINT, params)


def _safe_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500] or None
