"""Applications (ansokningar)."""

from __future__ import annotations

from typing import Any

from grant_sync.normalization.fields import UPDATED_AT_ALIASES, FieldSpec, normalize_record
from grant_sync.normalization.models import ApplicationRecord, check_record

APPLICATION_ID_ALIASES = ("Diarienummer", "diarienummer", "id")

APPLICATION_FIELDS = (
    FieldSpec("title", ("Titel", "titel", "title")),
    FieldSpec("status", ("Status", "status")),
    FieldSpec(
        "decision_date",
        ("Beslutsdatum", "beslutsdatum", "decision_date", "decisionDate"),
        is_date=True,
    ),
    FieldSpec("updated_at", UPDATED_AT_ALIASES),
)


def normalize_application(raw: Any) -> dict[str, str | None] | None:
    return normalize_record(
        raw,
        entity="applications",
        id_aliases=APPLICATION_ID_ALIASES,
        fields=APPLICATION_FIELDS,
    )


def validate_application(record: Any) -> bool:
    return check_record(ApplicationRecord, record, entity="applications")
