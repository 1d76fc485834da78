from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest

from grant_sync.db.errors import StoreError
from grant_sync.db.session import DatabaseSessionManager
from grant_sync.infrastructure.persistence.sqlite.record_store import SqliteRecordStore
from grant_sync.sync.lock import SyncLease
from tests.conftest import InMemoryRecordStore

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from pathlib import Path


class _WallClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def wall_clock() -> _WallClock:
    return _WallClock()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterator[SqliteRecordStore]:
    db = DatabaseSessionManager(str(tmp_path / "grants.db"))
    db.migrate()
    yield SqliteRecordStore(db)
    db.close()


@pytest.mark.asyncio
async def test_acquire_and_release(store: InMemoryRecordStore, wall_clock: _WallClock) -> None:
    lease = SyncLease(store, "vinnova-sync", timedelta(minutes=30), clock=wall_clock, owner="a")

    assert await lease.acquire() is True
    assert lease.held
    assert store.tables["sync_locks"]["vinnova-sync"] == {
        "job": "vinnova-sync",
        "owner": "a",
        "expires_at": "2024-05-01T12:30:00+00:00",
    }

    await lease.release()
    assert not lease.held
    assert store.rows("sync_locks") == []


@pytest.mark.asyncio
async def test_each_lease_gets_its_own_owner_token(store: InMemoryRecordStore) -> None:
    assert SyncLease(store).owner != SyncLease(store).owner


@pytest.mark.asyncio
async def test_live_lease_blocks_second_holder(
    store: InMemoryRecordStore, wall_clock: _WallClock
) -> None:
    first = SyncLease(store, clock=wall_clock)
    second = SyncLease(store, clock=wall_clock)

    assert await first.acquire()
    assert await second.acquire() is False

    await second.release()
    assert store.rows("sync_locks"), "a refused holder must not delete the live lease"


@pytest.mark.asyncio
async def test_expired_lease_is_taken_over(
    store: InMemoryRecordStore, wall_clock: _WallClock
) -> None:
    stale = SyncLease(store, ttl=timedelta(minutes=30), clock=wall_clock, owner="stale")
    await stale.acquire()

    wall_clock.now += timedelta(minutes=31)
    fresh = SyncLease(store, clock=wall_clock, owner="fresh")

    assert await fresh.acquire() is True
    assert store.tables["sync_locks"]["vinnova-sync"]["owner"] == "fresh"


@pytest.mark.asyncio
async def test_late_release_keeps_the_new_holders_lease(
    store: InMemoryRecordStore, wall_clock: _WallClock
) -> None:
    old = SyncLease(store, ttl=timedelta(minutes=30), clock=wall_clock, owner="old")
    assert await old.acquire()

    wall_clock.now += timedelta(minutes=31)
    new = SyncLease(store, clock=wall_clock, owner="new")
    assert await new.acquire()

    await old.release()

    assert not old.held
    assert store.tables["sync_locks"]["vinnova-sync"]["owner"] == "new"
    assert await SyncLease(store, clock=wall_clock).acquire() is False


@pytest.mark.asyncio
async def test_takeover_of_row_changed_since_read_is_refused(
    store: InMemoryRecordStore, wall_clock: _WallClock
) -> None:
    store.tables["sync_locks"]["vinnova-sync"] = {
        "job": "vinnova-sync",
        "owner": "gone",
        "expires_at": "2024-05-01T11:00:00+00:00",
    }
    original_update = store.update

    async def _update_after_rival(
        table: str, where: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int:
        store.tables["sync_locks"]["vinnova-sync"]["owner"] = "rival"
        return await original_update(table, where, values)

    store.update = _update_after_rival  # type: ignore[method-assign]

    lease = SyncLease(store, clock=wall_clock, owner="late")

    assert await lease.acquire() is False
    assert not lease.held
    assert store.tables["sync_locks"]["vinnova-sync"]["owner"] == "rival"


@pytest.mark.asyncio
async def test_hold_releases_on_error(store: InMemoryRecordStore, wall_clock: _WallClock) -> None:
    lease = SyncLease(store, clock=wall_clock)

    with pytest.raises(RuntimeError):
        async with lease.hold() as acquired:
            assert acquired
            raise RuntimeError("sync crashed")

    assert store.rows("sync_locks") == []


@pytest.mark.asyncio
async def test_store_error_refuses_lease(
    store: InMemoryRecordStore, wall_clock: _WallClock
) -> None:
    store.fail_operations[("insert", "sync_locks")] = StoreError("locked")

    async with SyncLease(store, clock=wall_clock).hold() as acquired:
        assert acquired is False


@pytest.mark.asyncio
async def test_read_error_during_takeover_refuses_lease(
    store: InMemoryRecordStore, wall_clock: _WallClock
) -> None:
    await SyncLease(store, clock=wall_clock).acquire()
    store.fail_operations[("select_one", "sync_locks")] = StoreError("locked")

    assert await SyncLease(store, clock=wall_clock).acquire() is False


@pytest.mark.asyncio
async def test_concurrent_acquire_on_sqlite_has_one_winner(
    sqlite_store: SqliteRecordStore,
) -> None:
    results = await asyncio.gather(
        SyncLease(sqlite_store).acquire(),
        SyncLease(sqlite_store).acquire(),
        SyncLease(sqlite_store).acquire(),
    )

    assert sorted(results) == [False, False, True]
    assert len(await sqlite_store.select("sync_locks")) == 1


@pytest.mark.asyncio
async def test_concurrent_takeover_on_sqlite_has_one_winner(
    sqlite_store: SqliteRecordStore, wall_clock: _WallClock
) -> None:
    await sqlite_store.upsert(
        "sync_locks",
        {"job": "vinnova-sync", "owner": "crashed", "expires_at": "2024-05-01T11:00:00+00:00"},
    )
    first = SyncLease(sqlite_store, clock=wall_clock, owner="first")
    second = SyncLease(sqlite_store, clock=wall_clock, owner="second")

    results = await asyncio.gather(first.acquire(), second.acquire())

    assert sorted(results) == [False, True]
    row = await sqlite_store.select_one("sync_locks", {"job": "vinnova-sync"})
    winner = first if first.held else second
    assert row["owner"] == winner.owner
    assert row["expires_at"] == "2024-05-01T12:30:00+00:00"


@pytest.mark.asyncio
async def test_late_release_on_sqlite_keeps_the_new_holders_lease(
    sqlite_store: SqliteRecordStore, wall_clock: _WallClock
) -> None:
    old = SyncLease(sqlite_store, ttl=timedelta(minutes=30), clock=wall_clock)
    assert await old.acquire()

    wall_clock.now += timedelta(minutes=31)
    new = SyncLease(sqlite_store, clock=wall_clock)
    assert await new.acquire()

    await old.release()

    [row] = await sqlite_store.select("sync_locks")
    assert row["owner"] == new.owner
    assert await SyncLease(sqlite_store, clock=wall_clock).acquire() is False

    await new.release()
    assert await sqlite_store.select("sync_locks") == []
