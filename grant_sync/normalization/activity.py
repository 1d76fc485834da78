"""Funded activities (finansierade aktiviteter)."""

from __future__ import annotations

from typing import Any

from grant_sync.normalization.fields import UPDATED_AT_ALIASES, FieldSpec, normalize_record
from grant_sync.normalization.models import ActivityRecord, check_record

ACTIVITY_ID_ALIASES = ("AktivitetsID", "aktivitetsid", "id")

ACTIVITY_FIELDS = (
    FieldSpec("name", ("Aktivitetsnamn", "aktivitetsnamn", "Namn", "namn", "name")),
    FieldSpec("description", ("Beskrivning", "beskrivning", "description")),
    FieldSpec("start_date", ("Startdatum", "startdatum", "start_date", "startDate"), is_date=True),
    FieldSpec("end_date", ("Slutdatum", "slutdatum", "end_date", "endDate"), is_date=True),
    FieldSpec("updated_at", UPDATED_AT_ALIASES),
)


def normalize_activity(raw: Any) -> dict[str, str | None] | None:
    return normalize_record(
        raw,
        entity="activities",
        id_aliases=ACTIVITY_ID_ALIASES,
        fields=ACTIVITY_FIELDS,
    )


def validate_activity(record: Any) -> bool:
    return check_record(ActivityRecord, record, entity="activities")
