"""Per-entity checkpoints and progress rows."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from grant_sync.core.time_utils import utc_now_iso
from grant_sync.db.errors import RecordNotFoundError, StoreError
from grant_sync.sync.models import SyncCheckpoint, SyncProgress

if TYPE_CHECKING:
    from grant_sync.sync.protocols import RecordStore

logger = logging.getLogger(__name__)

SYNC_STATE_TABLE = "sync_state"
SYNC_PROGRESS_TABLE = "sync_progress"


def progress_percent(processed: int, total: int) -> int:
    """Whole percent, rounding halves up; an empty pass counts as complete."""
    if total <= 0:
        return 100
    return (processed * 100 + total // 2) // total


class CheckpointStore:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def get_last_synced_at(self, entity: str) -> str | None:
        """Return the checkpoint, or None to request a full sync."""
        try:
            row = await self.store.select_one(SYNC_STATE_TABLE, {"entity": entity})
        except RecordNotFoundError:
            return None
        except StoreError as exc:
            logger.error(
                "checkpoint_read_failed",
                extra={"entity": entity, "error": str(exc)},
            )
            return None
        return row.get("last_synced_at") or None

    async def set_last_synced_at(self, entity: str, timestamp: str) -> SyncCheckpoint:
        checkpoint = SyncCheckpoint(entity=entity, last_synced_at=timestamp)
        await self.store.upsert(
            SYNC_STATE_TABLE, {"entity": entity, "last_synced_at": timestamp}
        )
        logger.debug("checkpoint_written", extra={"entity": entity, "last_synced_at": timestamp})
        return checkpoint


class ProgressTracker:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def update(self, entity: str, processed: int, total: int) -> SyncProgress:
        progress = SyncProgress(
            entity=entity,
            processed=processed,
            total=total,
            percent=progress_percent(processed, total),
            updated_at=utc_now_iso(),
        )
        try:
            await self.store.upsert(SYNC_PROGRESS_TABLE, progress.model_dump())
        except StoreError as exc:
            logger.error(
                "progress_update_failed",
                extra={"entity": entity, "processed": processed, "error": str(exc)},
            )
        logger.info(
            "sync_progress",
            extra={
                "entity": entity,
                "processed": processed,
                "total": total,
                "percent": progress.percent,
            },
        )
        return progress
