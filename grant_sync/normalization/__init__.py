"""Normalization of Vinnova payloads into canonical records."""

from grant_sync.normalization.activity import normalize_activity, validate_activity
from grant_sync.normalization.application import normalize_application, validate_application
from grant_sync.normalization.grant import normalize_grant, validate_grant
from grant_sync.normalization.models import (
    ActivityRecord,
    ApplicationRecord,
    GrantRecord,
    ValidationFailure,
)

__all__ = [
    "ActivityRecord",
    "ApplicationRecord",
    "GrantRecord",
    "ValidationFailure",
    "normalize_activity",
    "normalize_application",
    "normalize_grant",
    "validate_activity",
    "validate_application",
    "validate_grant",
]
