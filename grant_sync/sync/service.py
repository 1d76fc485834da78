"""Vinnova sync service: wires the engine together and exposes the entrypoints."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from grant_sync.adapters.vinnova.cache import ResponseCache
from grant_sync.adapters.vinnova.exceptions import is_fetch_retryable
from grant_sync.adapters.vinnova.gateway import VinnovaReadGateway
from grant_sync.config import SyncConfig
from grant_sync.core.time_utils import utc_now
from grant_sync.sync.alerts import SlackWebhookAlerter
from grant_sync.sync.conflict import ConflictResolver
from grant_sync.sync.entities import ENTITY_SPECS, make_fetcher
from grant_sync.sync.ledger import FailureLedger
from grant_sync.sync.lock import SyncLease
from grant_sync.sync.models import RetrySummary, SyncErrorEntry, SyncReport
from grant_sync.sync.orchestrator import SyncOrchestrator
from grant_sync.sync.state import CheckpointStore, ProgressTracker
from grant_sync.utils.circuit_breaker import CircuitBreakerRegistry
from grant_sync.utils.retry_utils import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping

    from grant_sync.adapters.vinnova.client import VinnovaClient
    from grant_sync.adapters.vinnova.gateway import GatewayResponse
    from grant_sync.config import AppConfig
    from grant_sync.sync.protocols import AlertSender, RecordStore

logger = logging.getLogger(__name__)

SYNC_JOB_NAME = "vinnova-sync"


class VinnovaSyncService:
    """Owns the client-facing objects (breakers, caches, lease) for one process."""

    def __init__(
        self,
        client: VinnovaClient,
        store: RecordStore,
        *,
        config: SyncConfig | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        alerts: AlertSender | None = None,
        since_param: str = "updated_after",
        lease: SyncLease | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config or SyncConfig()
        self.breakers = breakers if breakers is not None else CircuitBreakerRegistry()
        self.since_param = since_param

        self.resolver = ConflictResolver(store)
        self.ledger = FailureLedger(store, self.resolver)
        self.orchestrator = SyncOrchestrator(
            resolver=self.resolver,
            ledger=self.ledger,
            checkpoints=CheckpointStore(store),
            progress=ProgressTracker(store),
            breakers=self.breakers,
            alerts=alerts,
            batch_size=self.config.batch_size,
            fetch_policy=RetryPolicy(
                max_attempts=self.config.fetch_max_attempts,
                base_delay=self.config.fetch_base_delay_sec,
                retryable=is_fetch_retryable,
            ),
        )
        self.gateway = VinnovaReadGateway(
            client,
            self.breakers,
            cache=ResponseCache(self.config.stale_cache_ttl_sec),
        )
        self.lease = lease or SyncLease(
            store, SYNC_JOB_NAME, timedelta(minutes=self.config.lock_ttl_minutes)
        )
        self._running = False

    @classmethod
    def from_config(
        cls, config: AppConfig, client: VinnovaClient, store: RecordStore
    ) -> VinnovaSyncService:
        return cls(
            client,
            store,
            config=config.sync,
            breakers=CircuitBreakerRegistry(config.circuit_breaker),
            alerts=SlackWebhookAlerter(
                config.alerts.slack_webhook_url, timeout=config.alerts.timeout_sec
            ),
            since_param=config.vinnova.since_param,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def sync_entity(self, entity: str) -> SyncReport:
        """Run one pass for ``entity``; unexpected errors come back as a failed report."""
        spec = ENTITY_SPECS[entity]
        started_at = utc_now()
        try:
            return await self.orchestrator.sync_entity(
                spec.name,
                make_fetcher(self.client, spec, since_param=self.since_param),
                spec.normalize_fn,
                spec.validate_fn,
                spec.table,
            )
        except Exception as exc:
            logger.exception("sync_entity_crashed", extra={"entity": entity})
            finished_at = utc_now()
            return SyncReport(
                entity=entity,
                errors=[SyncErrorEntry(error=str(exc) or type(exc).__name__, global_=True)],
                started_at=started_at.isoformat(),
                finished_at=finished_at.isoformat(),
                duration_ms=int((finished_at - started_at).total_seconds() * 1000),
            )

    async def sync_vinnova_grants(self) -> SyncReport:
        return await self.sync_entity("grants")

    async def sync_vinnova_applications(self) -> SyncReport:
        return await self.sync_entity("applications")

    async def sync_vinnova_activities(self) -> SyncReport:
        return await self.sync_entity("activities")

    async def sync_all_vinnova_entities(self) -> list[SyncReport]:
        """Sync grants, applications and activities concurrently."""
        reports = await asyncio.gather(
            self.sync_vinnova_grants(),
            self.sync_vinnova_applications(),
            self.sync_vinnova_activities(),
        )
        return list(reports)

    async def retry_failed_syncs(self, entity: str | None = None) -> list[RetrySummary]:
        """Replay the failure ledger for one entity, or for all of them in turn."""
        names = [entity] if entity else list(ENTITY_SPECS)
        summaries: list[RetrySummary] = []
        for name in names:
            spec = ENTITY_SPECS[name]
            summaries.append(
                await self.ledger.retry_failed_syncs(
                    spec.name, table=spec.table, validate_fn=spec.validate_fn
                )
            )
        return summaries

    async def read(self, entity: str, params: Mapping[str, Any] | None = None) -> GatewayResponse:
        """Fetch one page for ``entity`` through the stale-cache read path."""
        return await self.gateway.fetch(ENTITY_SPECS[entity].endpoint, params)

    async def run_scheduled_sync(self) -> list[SyncReport]:
        """Entry point for the scheduler: lease-guarded ``sync_all_vinnova_entities``."""
        if self._running:
            logger.warning("scheduled_sync_already_running")
            return []

        self._running = True
        start = time.perf_counter()
        try:
            async with self.lease.hold() as acquired:
                if not acquired:
                    logger.info("scheduled_sync_skipped_lock_held", extra={"job": self.lease.job})
                    return []
                logger.info("scheduled_sync_started", extra={"job": self.lease.job})
                reports = await self.sync_all_vinnova_entities()
                logger.info(
                    "scheduled_sync_completed",
                    extra={
                        "job": self.lease.job,
                        "reports": [report.to_json_dict() for report in reports],
                        "elapsed_seconds": round(time.perf_counter() - start, 2),
                    },
                )
                return reports
        except Exception:
            logger.exception("scheduled_sync_failed", extra={"job": self.lease.job})
            return []
        finally:
            self._running = False
