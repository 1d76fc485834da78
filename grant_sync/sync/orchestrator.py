"""Entity sync pass: fetch, normalize, validate, resolve, record."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from grant_sync.adapters.vinnova.client import extract_results
from grant_sync.adapters.vinnova.exceptions import is_fetch_retryable
from grant_sync.core.logging_utils import generate_correlation_id
from grant_sync.core.time_utils import utc_now
from grant_sync.db.errors import StoreError
from grant_sync.sync.conflict import Outcome
from grant_sync.sync.models import SyncErrorEntry, SyncReport
from grant_sync.utils.circuit_breaker import CircuitBreakerRegistry
from grant_sync.utils.retry_utils import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from grant_sync.sync.conflict import ConflictResolver
    from grant_sync.sync.ledger import FailureLedger
    from grant_sync.sync.protocols import AlertSender
    from grant_sync.sync.state import CheckpointStore, ProgressTracker

    FetchFn = Callable[[str | None], Awaitable[Any]]
    NormalizeFn = Callable[[Any], dict[str, Any] | None]
    ValidateFn = Callable[[Any], bool]
    ProgressFn = Callable[[int, int, int], Any]

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
MALFORMED_ERROR = "Malformed or missing id"
VALIDATION_ERROR = "Validation failed"


@dataclass
class _PassState:
    entity: str
    started_at: datetime
    total: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[SyncErrorEntry] = field(default_factory=list)

    def count(self, outcome: Outcome) -> None:
        if outcome is Outcome.INSERTED:
            self.inserted += 1
        elif outcome is Outcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1

    def fail(self, record_id: str | None, error: str) -> None:
        self.failed += 1
        self.errors.append(SyncErrorEntry(id=record_id, error=error))

    def to_report(self, finished_at: datetime) -> SyncReport:
        return SyncReport(
            entity=self.entity,
            inserted=self.inserted,
            updated=self.updated,
            unchanged=self.unchanged,
            failed=self.failed,
            errors=list(self.errors),
            total=self.total,
            started_at=self.started_at.isoformat(),
            finished_at=finished_at.isoformat(),
            duration_ms=int((finished_at - self.started_at).total_seconds() * 1000),
        )


def _raw_id(raw: Any, id_field: str) -> str | None:
    if isinstance(raw, dict):
        value = raw.get(id_field)
        return value if isinstance(value, str) and value else None
    return None


class SyncOrchestrator:
    """Run one incremental sync pass per entity.

    Records are processed in batches of ``batch_size``: records inside a
    batch run concurrently, batches run one after another. Record-level
    failures are counted, reported, and written to the failure ledger; a
    failed fetch aborts the pass with a single global error.
    """

    def __init__(
        self,
        *,
        resolver: ConflictResolver,
        ledger: FailureLedger,
        checkpoints: CheckpointStore,
        progress: ProgressTracker,
        breakers: CircuitBreakerRegistry | None = None,
        alerts: AlertSender | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        fetch_policy: RetryPolicy | None = None,
    ) -> None:
        if batch_size < 1:
            msg = "batch_size must be at least 1"
            raise ValueError(msg)
        self.resolver = resolver
        self.ledger = ledger
        self.checkpoints = checkpoints
        self.progress = progress
        self.breakers = breakers if breakers is not None else CircuitBreakerRegistry()
        self.alerts = alerts
        self.batch_size = batch_size
        self.fetch_policy = fetch_policy or RetryPolicy(
            max_attempts=3, base_delay=0.2, retryable=is_fetch_retryable
        )

    async def sync_entity(
        self,
        name: str,
        fetch_fn: FetchFn,
        normalize_fn: NormalizeFn,
        validate_fn: ValidateFn,
        table: str,
        id_field: str = "id",
        on_progress: ProgressFn | None = None,
    ) -> SyncReport:
        log_extra = {"entity": name, "correlation_id": generate_correlation_id()}
        state = _PassState(entity=name, started_at=utc_now())
        logger.info("sync_started", extra=log_extra)

        since = await self.checkpoints.get_last_synced_at(name)

        try:
            raw_records = extract_results(await self._fetch(name, fetch_fn, since, log_extra))
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            state.failed = state.total
            state.errors.append(SyncErrorEntry(error=message, global_=True))
            logger.error(
                "sync_fetch_failed",
                extra={**log_extra, "error": message, "error_type": type(exc).__name__},
            )
            await self._alert(f"Critical failure in {name} sync: {message}")
            return self._finish(state, log_extra)

        state.total = len(raw_records)
        normalized: list[dict[str, Any]] = []
        for raw in raw_records:
            record = normalize_fn(raw)
            record_id = record.get(id_field) if record is not None else None
            if not isinstance(record_id, str) or not record_id:
                state.fail(_raw_id(raw, id_field), MALFORMED_ERROR)
                continue
            normalized.append(record)  # type: ignore[arg-type]

        malformed = state.failed
        logger.info(
            "sync_fetched",
            extra={
                **log_extra,
                "since": since,
                "total": state.total,
                "normalized": len(normalized),
                "malformed": malformed,
            },
        )

        if not normalized:
            await self._report_progress(name, state.total, state.total, on_progress)

        for start in range(0, len(normalized), self.batch_size):
            batch = normalized[start : start + self.batch_size]
            await asyncio.gather(
                *(
                    self._sync_record(state, name, table, record, validate_fn, id_field)
                    for record in batch
                )
            )
            processed = malformed + start + len(batch)
            await self._report_progress(name, processed, state.total, on_progress)

        try:
            await self.checkpoints.set_last_synced_at(name, utc_now().isoformat())
        except StoreError as exc:
            logger.error("checkpoint_write_failed", extra={**log_extra, "error": str(exc)})

        if state.total > 0 and state.failed == state.total:
            details = json.dumps([entry.to_json_dict() for entry in state.errors], default=str)
            await self._alert(f"All records failed to sync for {name}. See errors: {details}")

        return self._finish(state, log_extra)

    async def _fetch(
        self,
        name: str,
        fetch_fn: FetchFn,
        since: str | None,
        log_extra: dict[str, Any],
    ) -> Any:
        breaker = self.breakers.get(name, "fetch")

        async def _fetch_with_retry() -> Any:
            return await self.fetch_policy.run(
                lambda: fetch_fn(since),
                operation_name=f"{name}_fetch",
                log_extra=log_extra,
            )

        return await breaker.call(_fetch_with_retry)

    async def _sync_record(
        self,
        state: _PassState,
        entity: str,
        table: str,
        record: dict[str, Any],
        validate_fn: ValidateFn,
        id_field: str,
    ) -> None:
        record_id = str(record[id_field])
        try:
            if not validate_fn(record):
                await self._record_failure(state, entity, record_id, VALIDATION_ERROR, record)
                return
            resolution = await self.resolver.resolve_and_upsert(table, record, id_field=id_field)
        except Exception as exc:
            await self._record_failure(
                state, entity, record_id, str(exc) or type(exc).__name__, record
            )
            return

        if resolution.error is not None:
            await self._record_failure(state, entity, record_id, str(resolution.error), record)
            return
        state.count(resolution.outcome)

    async def _record_failure(
        self,
        state: _PassState,
        entity: str,
        record_id: str,
        error: str,
        record: dict[str, Any],
    ) -> None:
        state.fail(record_id, error)
        await self.ledger.log_failure(entity, record_id, error, record)

    async def _report_progress(
        self, entity: str, processed: int, total: int, on_progress: ProgressFn | None
    ) -> None:
        progress = await self.progress.update(entity, processed, total)
        if on_progress is None:
            return
        try:
            result = on_progress(progress.processed, progress.total, progress.percent)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("sync_progress_callback_failed", extra={"entity": entity})

    async def _alert(self, message: str) -> None:
        if self.alerts is None:
            return
        try:
            await self.alerts.send_alert(message)
        except Exception:
            logger.exception("sync_alert_failed")

    def _finish(self, state: _PassState, log_extra: dict[str, Any]) -> SyncReport:
        report = state.to_report(utc_now())
        logger.info(
            "sync_completed",
            extra={
                **log_extra,
                "inserted": report.inserted,
                "updated": report.updated,
                "unchanged": report.unchanged,
                "failed": report.failed,
                "total": report.total,
                "duration_ms": report.duration_ms,
            },
        )
        return report
