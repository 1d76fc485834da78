"""Calls for proposals (utlysningar)."""

from __future__ import annotations

from typing import Any

from grant_sync.normalization.fields import UPDATED_AT_ALIASES, FieldSpec, normalize_record
from grant_sync.normalization.models import GrantRecord, check_record

GRANT_ID_ALIASES = ("Diarienummer", "diarienummer", "id")

GRANT_FIELDS = (
    FieldSpec("title", ("Titel", "titel", "title")),
    FieldSpec("description", ("Beskrivning", "beskrivning", "description")),
    FieldSpec(
        "deadline",
        ("Beslutsdatum", "beslutsdatum", "Publiceringsdatum", "publiceringsdatum", "deadline"),
        is_date=True,
    ),
    FieldSpec("sector", ("Sektor", "sektor", "sector")),
    FieldSpec("stage", ("Stage", "stage")),
    FieldSpec("updated_at", UPDATED_AT_ALIASES),
)


def normalize_grant(raw: Any) -> dict[str, str | None] | None:
    return normalize_record(raw, entity="grants", id_aliases=GRANT_ID_ALIASES, fields=GRANT_FIELDS)


def validate_grant(record: Any) -> bool:
    return check_record(GrantRecord, record, entity="grants")
