"""Vinnova external-data sync engine."""

from grant_sync.sync.models import RetrySummary, SyncErrorEntry, SyncReport
from grant_sync.sync.service import VinnovaSyncService

__all__ = ["RetrySummary", "SyncErrorEntry", "SyncReport", "VinnovaSyncService"]
