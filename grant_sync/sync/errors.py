from __future__ import annotations


class SyncEngineError(Exception):
    """Base exception for sync engine errors."""


class ConflictResolutionError(SyncEngineError):
    """The record chosen by last-write-wins could not be persisted."""

    def __init__(self, message: str, *, table: str, record_id: str | None) -> None:
        super().__init__(message)
        self.table = table
        self.record_id = record_id
