"""Last-write-wins conflict resolution against stored records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from grant_sync.core.time_utils import parse_timestamp
from grant_sync.db.errors import RecordNotFoundError, StoreError
from grant_sync.sync.errors import ConflictResolutionError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from grant_sync.sync.protocols import RecordStore

logger = logging.getLogger(__name__)


class Decision(Enum):
    KEEP_EXISTING = "keep_existing"
    USE_INCOMING = "use_incoming"


class Outcome(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Resolution:
    decision: Decision
    outcome: Outcome
    record: dict[str, Any]
    error: ConflictResolutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def choose_last_write(
    existing: Mapping[str, Any] | None,
    incoming: Mapping[str, Any],
    *,
    timestamp_field: str = "updated_at",
) -> Decision:
    """Pick the record to persist.

    The strictly newer valid timestamp wins and ties go to ``incoming``. A
    record with an unparseable or missing timestamp loses to one that has a
    valid timestamp; when neither has one ``incoming`` wins.
    """
    if existing is None:
        return Decision.USE_INCOMING

    existing_ts = parse_timestamp(existing.get(timestamp_field))
    incoming_ts = parse_timestamp(incoming.get(timestamp_field))

    if existing_ts is not None and incoming_ts is not None:
        return Decision.KEEP_EXISTING if existing_ts > incoming_ts else Decision.USE_INCOMING
    if existing_ts is not None:
        return Decision.KEEP_EXISTING
    return Decision.USE_INCOMING


def _same_content(existing: Mapping[str, Any], chosen: Mapping[str, Any]) -> bool:
    return all(existing.get(key) == value for key, value in chosen.items())


class ConflictResolver:
    """Select the stored row, apply last-write-wins, and upsert the winner."""

    def __init__(self, store: RecordStore, *, timestamp_field: str = "updated_at") -> None:
        self.store = store
        self.timestamp_field = timestamp_field

    async def _load_existing(
        self, table: str, id_field: str, record_id: Any
    ) -> dict[str, Any] | None:
        try:
            return await self.store.select_one(table, {id_field: record_id})
        except RecordNotFoundError:
            return None
        except StoreError as exc:
            logger.warning(
                "conflict_existing_lookup_failed",
                extra={"table": table, "record_id": record_id, "error": str(exc)},
            )
            return None

    async def resolve_and_upsert(
        self, table: str, incoming: Mapping[str, Any], *, id_field: str = "id"
    ) -> Resolution:
        record_id = incoming.get(id_field)
        existing = await self._load_existing(table, id_field, record_id)
        decision = choose_last_write(existing, incoming, timestamp_field=self.timestamp_field)

        if existing is not None:
            self._log_decision(table, record_id, existing, incoming, decision)

        if existing is not None and decision is Decision.KEEP_EXISTING:
            chosen = dict(existing)
        else:
            chosen = dict(incoming)

        if existing is None:
            outcome = Outcome.INSERTED
        elif decision is Decision.KEEP_EXISTING or _same_content(existing, chosen):
            outcome = Outcome.UNCHANGED
        else:
            outcome = Outcome.UPDATED

        try:
            await self.store.upsert(table, chosen)
        except StoreError as exc:
            logger.error(
                "conflict_upsert_failed",
                extra={"table": table, "record_id": record_id, "error": str(exc)},
            )
            error = ConflictResolutionError(str(exc), table=table, record_id=record_id)
            error.__cause__ = exc
            return Resolution(decision=decision, outcome=outcome, record=chosen, error=error)

        return Resolution(decision=decision, outcome=outcome, record=chosen)

    def _log_decision(
        self,
        table: str,
        record_id: Any,
        existing: Mapping[str, Any],
        incoming: Mapping[str, Any],
        decision: Decision,
    ) -> None:
        existing_ts = parse_timestamp(existing.get(self.timestamp_field))
        incoming_ts = parse_timestamp(incoming.get(self.timestamp_field))
        extra = {"table": table, "record_id": record_id, "decision": decision.value}

        if existing_ts is not None and incoming_ts is not None:
            if existing_ts == incoming_ts:
                logger.debug("conflict_timestamps_equal", extra=extra)
            else:
                logger.debug("conflict_last_write_wins", extra=extra)
        elif existing_ts is not None:
            logger.warning("conflict_incoming_missing_timestamp", extra=extra)
        elif incoming_ts is not None:
            logger.warning("conflict_existing_missing_timestamp", extra=extra)
        else:
            logger.warning("conflict_both_missing_timestamp", extra=extra)
