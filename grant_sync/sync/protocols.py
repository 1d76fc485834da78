"""Protocol definitions (ports) for the sync engine.

The orchestration code depends only on these, not on the concrete SQLite
store or the Slack alerter.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping


class RecordStore(Protocol):
    async def select_one(self, table: str, where: Mapping[str, Any]) -> dict[str, Any]: ...

    async def select(
        self, table: str, where: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]: ...

    async def upsert(self, table: str, record: Mapping[str, Any]) -> None: ...

    async def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int: ...

    async def delete(self, table: str, where: Mapping[str, Any]) -> int: ...


class AlertSender(Protocol):
    async def send_alert(self, message: str) -> None: ...
