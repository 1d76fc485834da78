"""Job-level lease stored in ``sync_locks`` so only one sync runs at a time.

Every write is a single conditional statement: a fresh lease is an insert
that fails on the primary key, an expired lease is taken over by an update
matching the exact row that was read, and a release only deletes the row
this holder owns.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from grant_sync.core.time_utils import parse_timestamp, utc_now
from grant_sync.db.errors import DuplicateRecordError, RecordNotFoundError, StoreError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import datetime

    from grant_sync.sync.protocols import RecordStore

logger = logging.getLogger(__name__)

SYNC_LOCKS_TABLE = "sync_locks"


class SyncLease:
    """A lease on ``job`` that expires after ``ttl`` if never released."""

    def __init__(
        self,
        store: RecordStore,
        job: str = "vinnova-sync",
        ttl: timedelta = timedelta(minutes=30),
        *,
        clock: Callable[[], datetime] = utc_now,
        owner: str | None = None,
    ) -> None:
        self.store = store
        self.job = job
        self.ttl = ttl
        self.owner = owner or uuid.uuid4().hex
        self._clock = clock
        self.held = False

    async def acquire(self) -> bool:
        """Take the lease unless another holder's lease is still live."""
        now = self._clock()
        expires_at = (now + self.ttl).isoformat()

        try:
            await self.store.insert(
                SYNC_LOCKS_TABLE,
                {"job": self.job, "owner": self.owner, "expires_at": expires_at},
            )
        except DuplicateRecordError:
            return await self._take_over_expired(now, expires_at)
        except StoreError as exc:
            logger.error("sync_lock_write_failed", extra={"job": self.job, "error": str(exc)})
            return False

        return self._acquired()

    async def _take_over_expired(self, now: datetime, expires_at: str) -> bool:
        try:
            row = await self.store.select_one(SYNC_LOCKS_TABLE, {"job": self.job})
        except RecordNotFoundError:
            # Released between our insert and this read; the next run will retry.
            return False
        except StoreError as exc:
            logger.error("sync_lock_read_failed", extra={"job": self.job, "error": str(exc)})
            return False

        current_expiry = parse_timestamp(row.get("expires_at"))
        if current_expiry is not None and current_expiry > now:
            logger.info(
                "sync_lock_held_elsewhere",
                extra={"job": self.job, "expires_at": row.get("expires_at")},
            )
            return False

        try:
            claimed = await self.store.update(
                SYNC_LOCKS_TABLE,
                {"job": self.job, "owner": row.get("owner"), "expires_at": row.get("expires_at")},
                {"owner": self.owner, "expires_at": expires_at},
            )
        except StoreError as exc:
            logger.error("sync_lock_write_failed", extra={"job": self.job, "error": str(exc)})
            return False

        if claimed != 1:
            logger.info("sync_lock_takeover_lost", extra={"job": self.job})
            return False

        logger.warning(
            "sync_lock_expired_taken_over",
            extra={"job": self.job, "previous_owner": row.get("owner")},
        )
        return self._acquired()

    def _acquired(self) -> bool:
        self.held = True
        logger.info("sync_lock_acquired", extra={"job": self.job, "owner": self.owner})
        return True

    async def release(self) -> None:
        if not self.held:
            return
        try:
            deleted = await self.store.delete(
                SYNC_LOCKS_TABLE, {"job": self.job, "owner": self.owner}
            )
        except StoreError as exc:
            logger.error("sync_lock_release_failed", extra={"job": self.job, "error": str(exc)})
            return
        finally:
            self.held = False

        if deleted:
            logger.info("sync_lock_released", extra={"job": self.job})
        else:
            logger.warning("sync_lock_lost", extra={"job": self.job, "owner": self.owner})

    @contextlib.asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yield whether the lease was acquired; release it on exit."""
        acquired = await self.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                await self.release()
