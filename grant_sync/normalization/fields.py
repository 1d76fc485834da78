"""Alias-table driven field extraction shared by the entity normalizers."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")

UPDATED_AT_ALIASES = (
    "Uppdaterad",
    "uppdaterad",
    "SenastAndrad",
    "updated_at",
    "updatedAt",
    "lastModified",
)


@dataclass(frozen=True)
class FieldSpec:
    """Canonical field name, the source names tried in order, and date handling."""

    name: str
    aliases: tuple[str, ...]
    is_date: bool = False


def pick_first(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = raw.get(alias)
        if value is not None:
            return value
    return None


def coerce_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def format_date(value: str | None) -> str | None:
    """Reformat the first ``YYYY-M-D`` / ``YYYY/M/D`` match to ``YYYY-MM-DD``.

    Strings without a date-like match are returned unchanged.
    """
    if value is None:
        return None
    match = DATE_PATTERN.search(value)
    if match is None:
        return value
    year, month, day = match.groups()
    return f"{year}-{int(month):02d}-{int(day):02d}"


def normalize_record(
    raw: Any,
    *,
    entity: str,
    id_aliases: tuple[str, ...],
    fields: tuple[FieldSpec, ...],
) -> dict[str, str | None] | None:
    """Map a loosely typed upstream payload to a canonical record.

    Returns None (after logging why) when ``raw`` is not a mapping or has no
    usable string id.
    """
    if not isinstance(raw, Mapping):
        logger.warning(
            "normalize_input_not_mapping",
            extra={"entity": entity, "input_type": type(raw).__name__},
        )
        return None

    record_id = pick_first(raw, id_aliases)
    if not isinstance(record_id, str) or not record_id.strip():
        logger.warning(
            "normalize_missing_id",
            extra={"entity": entity, "id_value": repr(record_id)[:100], "keys": sorted(raw)[:20]},
        )
        return None

    record: dict[str, str | None] = {"id": record_id}
    for field in fields:
        value = coerce_str(pick_first(raw, field.aliases))
        record[field.name] = format_date(value) if field.is_date else value
    return record
