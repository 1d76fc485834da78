"""Failure ledger: per-record sync failures kept for later reconciliation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from grant_sync.core.time_utils import utc_now_iso
from grant_sync.db.errors import StoreError
from grant_sync.sync.models import RetrySummary, SyncErrorEntry, SyncFailureRecord

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from grant_sync.sync.conflict import ConflictResolver
    from grant_sync.sync.protocols import RecordStore

logger = logging.getLogger(__name__)

SYNC_FAILURES_TABLE = "sync_failures"


class FailureLedger:
    def __init__(self, store: RecordStore, resolver: ConflictResolver) -> None:
        self.store = store
        self.resolver = resolver

    async def log_failure(
        self,
        entity: str,
        record_id: str,
        error: str,
        record: Mapping[str, Any] | None,
    ) -> SyncFailureRecord | None:
        """Append a failure row. Persistence errors are logged, never raised."""
        payload = {
            "entity": entity,
            "record_id": record_id,
            "error": error,
            "record": dict(record) if record is not None else None,
            "failed_at": utc_now_iso(),
            "resolved": False,
        }
        try:
            row = await self.store.insert(SYNC_FAILURES_TABLE, payload)
        except StoreError as exc:
            logger.error(
                "sync_failure_log_failed",
                extra={"entity": entity, "record_id": record_id, "error": str(exc)},
            )
            return None

        logger.info(
            "sync_failure_logged",
            extra={"entity": entity, "record_id": record_id, "reason": error},
        )
        return SyncFailureRecord.model_validate({**payload, **row})

    async def unresolved(self, entity: str) -> list[SyncFailureRecord]:
        rows = await self.store.select(SYNC_FAILURES_TABLE, {"entity": entity, "resolved": False})
        return [SyncFailureRecord.model_validate(row) for row in rows]

    async def retry_failed_syncs(
        self,
        entity: str,
        *,
        table: str | None = None,
        validate_fn: Callable[[Any], bool] | None = None,
    ) -> RetrySummary:
        """Replay unresolved failures for ``entity`` one at a time.

        Successful replays are marked resolved; failures stay unresolved.
        """
        table = table or entity
        try:
            failures = await self.unresolved(entity)
        except StoreError as exc:
            logger.error(
                "sync_failure_retry_load_failed", extra={"entity": entity, "error": str(exc)}
            )
            return RetrySummary(
                entity=entity, errors=[SyncErrorEntry(error=str(exc), global_=True)]
            )

        if not failures:
            logger.info("sync_failure_retry_nothing_to_do", extra={"entity": entity})
            return RetrySummary(entity=entity)

        resolved = 0
        errors: list[SyncErrorEntry] = []

        for failure in failures:
            error = await self._replay(table, failure, validate_fn)
            if error is None:
                resolved += 1
            else:
                errors.append(SyncErrorEntry(id=failure.record_id, error=error))
                logger.warning(
                    "sync_failure_retry_failed",
                    extra={
                        "entity": entity,
                        "record_id": failure.record_id,
                        "failure_id": failure.id,
                        "error": error,
                    },
                )

        summary = RetrySummary(
            entity=entity,
            attempted=len(failures),
            resolved=resolved,
            still_failing=len(failures) - resolved,
            errors=errors,
        )
        logger.info(
            "sync_failure_retry_completed",
            extra={
                "entity": entity,
                "attempted": summary.attempted,
                "resolved": summary.resolved,
                "still_failing": summary.still_failing,
            },
        )
        return summary

    async def _replay(
        self,
        table: str,
        failure: SyncFailureRecord,
        validate_fn: Callable[[Any], bool] | None,
    ) -> str | None:
        """Return None when the failure was replayed and marked resolved."""
        if failure.record is None:
            return "No record stored for replay"
        if validate_fn is not None and not validate_fn(failure.record):
            return "Validation failed"

        try:
            resolution = await self.resolver.resolve_and_upsert(table, failure.record)
        except Exception as exc:
            return str(exc) or type(exc).__name__
        if resolution.error is not None:
            return str(resolution.error)

        try:
            await self.store.update(SYNC_FAILURES_TABLE, {"id": failure.id}, {"resolved": True})
        except StoreError as exc:
            return f"Replayed but could not mark resolved: {exc}"

        logger.info(
            "sync_failure_resolved",
            extra={"record_id": failure.record_id, "failure_id": failure.id},
        )
        return None
