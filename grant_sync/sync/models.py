"""Report and bookkeeping models for sync passes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SyncErrorEntry(_CamelModel):
    """One error in a report; ``global_`` marks a pass-level failure."""

    id: str | None = None
    error: str
    global_: bool = Field(default=False, alias="global")


class SyncReport(_CamelModel):
    """Outcome of one entity sync pass."""

    entity: str
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[SyncErrorEntry] = Field(default_factory=list)
    total: int = 0
    started_at: str
    finished_at: str | None = None
    duration_ms: int | None = None

    @property
    def has_global_error(self) -> bool:
        return any(entry.global_ for entry in self.errors)


class SyncCheckpoint(_CamelModel):
    entity: str
    last_synced_at: str


class SyncProgress(_CamelModel):
    entity: str
    processed: int
    total: int
    percent: int
    updated_at: str


class SyncFailureRecord(_CamelModel):
    id: int | None = None
    entity: str
    record_id: str
    error: str
    record: dict[str, Any] | None = None
    failed_at: str
    resolved: bool = False


class RetrySummary(_CamelModel):
    """Outcome of replaying unresolved ledger entries for one entity."""

    entity: str
    attempted: int = 0
    resolved: int = 0
    still_failing: int = 0
    errors: list[SyncErrorEntry] = Field(default_factory=list)
