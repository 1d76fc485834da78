from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_bounded_float, _parse_bounded_int


class SyncConfig(BaseModel):
    """Vinnova sync pass configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    batch_size: int = Field(default=10, validation_alias="SYNC_BATCH_SIZE")
    fetch_max_attempts: int = Field(default=3, validation_alias="SYNC_FETCH_MAX_ATTEMPTS")
    fetch_base_delay_sec: float = Field(default=0.2, validation_alias="SYNC_FETCH_BASE_DELAY_SEC")
    lock_ttl_minutes: int = Field(default=30, validation_alias="SYNC_LOCK_TTL_MINUTES")
    interval_minutes: int = Field(default=60, validation_alias="SYNC_INTERVAL_MINUTES")
    auto_enabled: bool = Field(default=False, validation_alias="SYNC_AUTO_ENABLED")
    stale_cache_ttl_sec: float = Field(default=300.0, validation_alias="SYNC_STALE_CACHE_TTL_SEC")

    @field_validator("batch_size", mode="before")
    @classmethod
    def _validate_batch_size(cls, value: Any) -> int:
        return _parse_bounded_int(value, default=10, label="Sync batch size", low=1, high=500)

    @field_validator("fetch_max_attempts", mode="before")
    @classmethod
    def _validate_fetch_attempts(cls, value: Any) -> int:
        return _parse_bounded_int(
            value, default=3, label="Sync fetch max attempts", low=1, high=10
        )

    @field_validator("lock_ttl_minutes", "interval_minutes", mode="before")
    @classmethod
    def _validate_minutes(cls, value: Any, info: ValidationInfo) -> int:
        return _parse_bounded_int(
            value,
            default=cls.model_fields[info.field_name].default,
            label=info.field_name.replace("_", " ").capitalize(),
            low=1,
            high=10080,
        )

    @field_validator("fetch_base_delay_sec", "stale_cache_ttl_sec", mode="before")
    @classmethod
    def _validate_seconds(cls, value: Any, info: ValidationInfo) -> float:
        return _parse_bounded_float(
            value,
            default=cls.model_fields[info.field_name].default,
            label=info.field_name.replace("_", " ").capitalize(),
            low=0.0,
            high=86400.0,
        )
