from __future__ import annotations

from ._validators import _ensure_api_key
from .circuit_breaker import CircuitBreakerConfig
from .integrations import AlertConfig, VinnovaConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import SyncConfig

__all__ = [
    "AlertConfig",
    "AppConfig",
    "CircuitBreakerConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "VinnovaConfig",
    "_ensure_api_key",
    "load_config",
]
