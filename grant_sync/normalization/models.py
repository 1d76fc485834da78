"""Strict schemas for canonical records."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class _CanonicalRecord(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    updated_at: str | None = None


class GrantRecord(_CanonicalRecord):
    title: str | None = None
    description: str | None = None
    deadline: str | None = None
    sector: str | None = None
    stage: str | None = None


class ApplicationRecord(_CanonicalRecord):
    title: str | None = None
    status: str | None = None
    decision_date: str | None = None


class ActivityRecord(_CanonicalRecord):
    name: str | None = None
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class ValidationFailure(ValueError):
    """A normalized record does not satisfy its canonical schema."""

    def __init__(self, entity: str, errors: list[dict[str, Any]]) -> None:
        super().__init__(f"{entity} record failed validation")
        self.entity = entity
        self.errors = errors


def ensure_valid(model: type[_CanonicalRecord], record: Any, *, entity: str) -> None:
    try:
        model.model_validate(record)
    except ValidationError as exc:
        errors = [
            {
                "loc": ".".join(str(part) for part in err["loc"]),
                "type": err["type"],
                "msg": err["msg"],
            }
            for err in exc.errors()
        ]
        raise ValidationFailure(entity, errors) from exc


def check_record(model: type[_CanonicalRecord], record: Any, *, entity: str) -> bool:
    """Return True when ``record`` matches ``model``; log the violations otherwise."""
    try:
        ensure_valid(model, record, entity=entity)
    except ValidationFailure as exc:
        logger.warning(
            "record_validation_failed",
            extra={"entity": entity, "errors": exc.errors, "record": record},
        )
        return False
    return True
