"""OAuth2 client-credentials token provider for the Vinnova API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import httpx

from grant_sync.adapters.vinnova.exceptions import VinnovaAuthError

if TYPE_CHECKING:
    from collections.abc import Callable

    from grant_sync.config import VinnovaConfig

logger = logging.getLogger(__name__)

# Tokens are refreshed this many seconds before their stated expiry.
TOKEN_REFRESH_MARGIN_SEC = 60.0


class VinnovaTokenProvider:
    """Fetches and caches a bearer token using the client-credentials grant."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.timeout = timeout
        self._http_client = http_client
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, config: VinnovaConfig, *, http_client: httpx.AsyncClient | None = None
    ) -> VinnovaTokenProvider:
        return cls(
            config.token_url,
            config.client_id,
            config.client_secret,
            config.scope,
            http_client=http_client,
            timeout=config.timeout_sec,
        )

    def _is_fresh(self) -> bool:
        return (
            self._token is not None
            and self._clock() < self._expires_at - TOKEN_REFRESH_MARGIN_SEC
        )

    async def get_token(self) -> str:
        if self._is_fresh():
            return self._token  # type: ignore[return-value]

        async with self._lock:
            if self._is_fresh():
                return self._token  # type: ignore[return-value]
            return await self._refresh()

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def _refresh(self) -> str:
        requested_at = self._clock()
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.token_url, data=form, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.token_url, data=form)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "vinnova_token_request_failed",
                extra={"status_code": exc.response.status_code},
            )
            raise VinnovaAuthError(
                "Failed to obtain Vinnova access token",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("vinnova_token_request_failed", extra={"error": str(exc)})
            raise VinnovaAuthError("Failed to obtain Vinnova access token") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise VinnovaAuthError("Failed to obtain Vinnova access token")

        try:
            expires_in = float(payload.get("expires_in", 0))
        except (TypeError, ValueError):
            expires_in = 0.0

        self._token = str(token)
        self._expires_at = requested_at + expires_in
        logger.info("vinnova_token_refreshed", extra={"expires_in": expires_in})
        return self._token
