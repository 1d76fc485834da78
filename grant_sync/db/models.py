"""Peewee ORM models for the sync database."""

from __future__ import annotations

from typing import Any

import peewee
from playhouse.sqlite_ext import JSONField

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    class Meta:
        database = database_proxy
        legacy_table_names = False


class Grant(BaseModel):
    id = peewee.TextField(primary_key=True)
    title = peewee.TextField(null=True)
    description = peewee.TextField(null=True)
    deadline = peewee.TextField(null=True)
    sector = peewee.TextField(null=True)
    stage = peewee.TextField(null=True)
    # Upstream last-modified value, kept verbatim for last-write-wins.
    updated_at = peewee.TextField(null=True)

    class Meta:
        table_name = "grants"


class Application(BaseModel):
    id = peewee.TextField(primary_key=True)
    title = peewee.TextField(null=True)
    status = peewee.TextField(null=True)
    decision_date = peewee.TextField(null=True)
    updated_at = peewee.TextField(null=True)

    class Meta:
        table_name = "applications"


class Activity(BaseModel):
    id = peewee.TextField(primary_key=True)
    name = peewee.TextField(null=True)
    description = peewee.TextField(null=True)
    start_date = peewee.TextField(null=True)
    end_date = peewee.TextField(null=True)
    updated_at = peewee.TextField(null=True)

    class Meta:
        table_name = "activities"


class SyncState(BaseModel):
    entity = peewee.TextField(primary_key=True)
    last_synced_at = peewee.TextField()

    class Meta:
        table_name = "sync_state"


class SyncFailure(BaseModel):
    id = peewee.AutoField()
    entity = peewee.TextField()
    record_id = peewee.TextField()
    error = peewee.TextField()
    record = JSONField(null=True)
    failed_at = peewee.TextField()
    resolved = peewee.BooleanField(default=False)

    class Meta:
        table_name = "sync_failures"
        indexes = ((("entity", "resolved"), False),)


class SyncProgress(BaseModel):
    entity = peewee.TextField(primary_key=True)
    processed = peewee.IntegerField(default=0)
    total = peewee.IntegerField(default=0)
    percent = peewee.IntegerField(default=0)
    updated_at = peewee.TextField()

    class Meta:
        table_name = "sync_progress"


class SyncLock(BaseModel):
    job = peewee.TextField(primary_key=True)
    owner = peewee.TextField(null=True)
    expires_at = peewee.TextField()

    class Meta:
        table_name = "sync_locks"


ALL_MODELS: tuple[type[BaseModel], ...] = (
    Grant,
    Application,
    Activity,
    SyncState,
    SyncFailure,
    SyncProgress,
    SyncLock,
)

MODELS_BY_TABLE: dict[str, type[BaseModel]] = {
    model._meta.table_name: model for model in ALL_MODELS
}


def model_to_dict(model: BaseModel | None) -> dict[str, Any] | None:
    """Convert a Peewee model instance to a plain dictionary."""
    if model is None:
        return None
    data: dict[str, Any] = {}
    for field_name in model._meta.sorted_field_names:
        data[field_name] = getattr(model, field_name)
    return data
