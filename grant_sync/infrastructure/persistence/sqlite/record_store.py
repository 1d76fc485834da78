"""SQLite implementation of the record-oriented store used by the sync engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import peewee

from grant_sync.db.errors import DuplicateRecordError, RecordNotFoundError, StoreError
from grant_sync.db.models import MODELS_BY_TABLE, BaseModel, model_to_dict

if TYPE_CHECKING:
    from collections.abc import Mapping

    from grant_sync.db.session import DatabaseSessionManager

logger = logging.getLogger(__name__)


class SqliteRecordStore:
    """Table-addressed CRUD over the peewee models.

    Peewee and SQLite errors are translated to :class:`StoreError`;
    ``select_one`` raises :class:`RecordNotFoundError` when nothing matches.
    """

    def __init__(self, session_manager: DatabaseSessionManager) -> None:
        self._session = session_manager

    def _model(self, table: str) -> type[BaseModel]:
        model = MODELS_BY_TABLE.get(table)
        if model is None:
            msg = f"Unknown table: {table}"
            raise StoreError(msg, table=table)
        return model

    @staticmethod
    def _field(model: type[BaseModel], table: str, name: str) -> peewee.Field:
        field = model._meta.fields.get(name)
        if field is None:
            msg = f"Unknown column {name!r} for table {table}"
            raise StoreError(msg, table=table)
        return field

    def _conditions(
        self, model: type[BaseModel], table: str, where: Mapping[str, Any] | None
    ) -> list[Any]:
        if where is not None and not where:
            msg = f"Empty filter for {table}"
            raise StoreError(msg, table=table)
        return [self._field(model, table, key) == value for key, value in (where or {}).items()]

    def _values(
        self, model: type[BaseModel], table: str, values: Mapping[str, Any]
    ) -> dict[peewee.Field, Any]:
        return {self._field(model, table, key): value for key, value in values.items()}

    async def _run(
        self, table: str, operation: Any, *, operation_name: str, read_only: bool = False
    ) -> Any:
        try:
            return await self._session._safe_db_operation(
                operation, operation_name=operation_name, read_only=read_only
            )
        except StoreError:
            raise
        except peewee.IntegrityError as exc:
            msg = f"{operation_name} conflicts with an existing {table} row: {exc}"
            raise DuplicateRecordError(msg, table=table) from exc
        except (peewee.PeeweeException, TimeoutError) as exc:
            msg = f"{operation_name} failed for {table}: {exc}"
            raise StoreError(msg, table=table) from exc

    async def select_one(self, table: str, where: Mapping[str, Any]) -> dict[str, Any]:
        model = self._model(table)
        conditions = self._conditions(model, table, where)

        def _query() -> dict[str, Any] | None:
            return model.select().where(*conditions).dicts().first()

        row = await self._run(table, _query, operation_name="select_one", read_only=True)
        if row is None:
            msg = f"No {table} row matches {dict(where)}"
            raise RecordNotFoundError(msg, table=table)
        return row

    async def select(
        self, table: str, where: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        model = self._model(table)
        conditions = self._conditions(model, table, where)

        def _query() -> list[dict[str, Any]]:
            query = model.select()
            if conditions:
                query = query.where(*conditions)
            return list(query.order_by(model._meta.primary_key).dicts())

        return await self._run(table, _query, operation_name="select", read_only=True)

    async def upsert(self, table: str, record: Mapping[str, Any]) -> None:
        """Insert ``record`` or overwrite the row with the same primary key."""
        model = self._model(table)
        values = self._values(model, table, record)
        primary_key = model._meta.primary_key
        if primary_key not in values:
            msg = f"Upsert into {table} requires {primary_key.name!r}"
            raise StoreError(msg, table=table)
        preserve = [field for field in values if field is not primary_key]

        def _query() -> None:
            query = model.insert(values)
            if preserve:
                query = query.on_conflict(conflict_target=[primary_key], preserve=preserve)
            else:
                query = query.on_conflict_ignore()
            query.execute()

        await self._run(table, _query, operation_name="upsert")

    async def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        model = self._model(table)
        values = self._values(model, table, record)

        def _query() -> dict[str, Any]:
            instance = model.create(**{field.name: value for field, value in values.items()})
            return model_to_dict(instance) or {}

        return await self._run(table, _query, operation_name="insert")

    async def update(
        self, table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int:
        model = self._model(table)
        conditions = self._conditions(model, table, where)
        changes = self._values(model, table, values)

        def _query() -> int:
            return model.update(changes).where(*conditions).execute()

        return await self._run(table, _query, operation_name="update")

    async def delete(self, table: str, where: Mapping[str, Any]) -> int:
        model = self._model(table)
        conditions = self._conditions(model, table, where)

        def _query() -> int:
            return model.delete().where(*conditions).execute()

        return await self._run(table, _query, operation_name="delete")
