from __future__ import annotations


class StoreError(Exception):
    """A record store operation failed."""

    def __init__(self, message: str, *, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class RecordNotFoundError(StoreError):
    """``select_one`` matched no row."""


class DuplicateRecordError(StoreError):
    """A write violated a table constraint, typically a duplicate primary key."""
