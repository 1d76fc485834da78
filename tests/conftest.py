"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from typing import Any

import httpx
import pytest

from grant_sync.db.errors import DuplicateRecordError, RecordNotFoundError, StoreError

PRIMARY_KEYS = {
    "grants": "id",
    "applications": "id",
    "activities": "id",
    "sync_state": "entity",
    "sync_failures": "id",
    "sync_progress": "entity",
    "sync_locks": "job",
}


def _matches(row: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    return all(row.get(key) == value for key, value in (where or {}).items())


class InMemoryRecordStore:
    """Dict-backed RecordStore with hooks for injecting failures."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[Any, dict[str, Any]]] = defaultdict(dict)
        self.calls: list[tuple[str, str]] = []
        self.fail_operations: dict[tuple[str, str], Exception] = {}
        self.fail_upsert_ids: set[str] = set()
        self._next_id = 1

    def _record_call(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        error = self.fail_operations.get((operation, table))
        if error is not None:
            raise error

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [dict(row) for row in self.tables[table].values()]

    async def select_one(self, table: str, where: Mapping[str, Any]) -> dict[str, Any]:
        self._record_call("select_one", table)
        for row in self.tables[table].values():
            if _matches(row, where):
                return dict(row)
        msg = f"No {table} row matches {dict(where)}"
        raise RecordNotFoundError(msg, table=table)

    async def select(
        self, table: str, where: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        self._record_call("select", table)
        return [dict(row) for row in self.tables[table].values() if _matches(row, where)]

    async def upsert(self, table: str, record: Mapping[str, Any]) -> None:
        self._record_call("upsert", table)
        key = record[PRIMARY_KEYS[table]]
        if key in self.fail_upsert_ids:
            msg = f"upsert rejected for {key}"
            raise StoreError(msg, table=table)
        self.tables[table][key] = {**self.tables[table].get(key, {}), **dict(record)}

    async def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        self._record_call("insert", table)
        row = dict(record)
        if PRIMARY_KEYS[table] == "id" and "id" not in row:
            row["id"] = self._next_id
            self._next_id += 1
        if row[PRIMARY_KEYS[table]] in self.tables[table]:
            msg = f"duplicate {table} key {row[PRIMARY_KEYS[table]]!r}"
            raise DuplicateRecordError(msg, table=table)
        self.tables[table][row[PRIMARY_KEYS[table]]] = row
        return dict(row)

    async def update(
        self, table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int:
        self._record_call("update", table)
        count = 0
        for row in self.tables[table].values():
            if _matches(row, where):
                row.update(values)
                count += 1
        return count

    async def delete(self, table: str, where: Mapping[str, Any]) -> int:
        self._record_call("delete", table)
        keys = [key for key, row in self.tables[table].items() if _matches(row, where)]
        for key in keys:
            del self.tables[table][key]
        return len(keys)


class RecordingAlerts:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send_alert(self, message: str) -> None:
        self.messages.append(message)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def mock_http_client(handler: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment variables out of config-driven tests."""
    for name in (
        "VINNOVA_API_BASE_URL",
        "VINNOVA_API_KEY",
        "VINNOVA_SUBSCRIPTION_KEY",
        "USE_OAUTH2",
        "VINNOVA_TENANT_ID",
        "VINNOVA_CLIENT_ID",
        "VINNOVA_CLIENT_SECRET",
        "VINNOVA_SCOPE",
        "SYNC_BATCH_SIZE",
        "CIRCUIT_BREAKER_FAILURE_THRESHOLD",
        "SLACK_WEBHOOK_URL",
        "DB_PATH",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
