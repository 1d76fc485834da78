"""Vinnova open-data API adapter."""

from grant_sync.adapters.vinnova.cache import ResponseCache
from grant_sync.adapters.vinnova.client import VinnovaClient
from grant_sync.adapters.vinnova.exceptions import (
    UpstreamUnavailableError,
    VinnovaApiError,
    VinnovaAuthError,
    VinnovaClientError,
    VinnovaNetworkError,
    VinnovaRateLimitError,
    VinnovaServerError,
)
from grant_sync.adapters.vinnova.gateway import GatewayResponse, VinnovaReadGateway

__all__ = [
    "GatewayResponse",
    "ResponseCache",
    "UpstreamUnavailableError",
    "VinnovaApiError",
    "VinnovaAuthError",
    "VinnovaClient",
    "VinnovaClientError",
    "VinnovaNetworkError",
    "VinnovaRateLimitError",
    "VinnovaReadGateway",
    "VinnovaServerError",
]
