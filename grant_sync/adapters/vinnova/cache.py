"""In-memory TTL cache for GET responses."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


def make_cache_key(method: str, url: str, params: Mapping[str, Any] | None) -> str:
    return f"{method.upper()} {url} {json.dumps(dict(params or {}), sort_keys=True, default=str)}"


class ResponseCache:
    """Per-key TTL cache; a hit never extends an entry's lifetime."""

    def __init__(
        self, ttl_seconds: float = 120.0, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
