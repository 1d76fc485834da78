from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_bounded_float, _parse_bounded_int


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker configuration for upstream Vinnova calls."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    failure_threshold: int = Field(
        default=3,
        validation_alias="CIRCUIT_BREAKER_FAILURE_THRESHOLD",
        description="Consecutive failures before opening the circuit",
    )
    timeout_seconds: float = Field(
        default=15.0,
        validation_alias="CIRCUIT_BREAKER_TIMEOUT_SECONDS",
        description="Seconds to hold the circuit open before a half-open probe",
    )
    success_threshold: int = Field(
        default=1,
        validation_alias="CIRCUIT_BREAKER_SUCCESS_THRESHOLD",
        description="Successful probes needed in half-open to close",
    )

    @field_validator("failure_threshold", "success_threshold", mode="before")
    @classmethod
    def _validate_threshold(cls, value: Any, info: ValidationInfo) -> int:
        return _parse_bounded_int(
            value,
            default=cls.model_fields[info.field_name].default,
            label=info.field_name.replace("_", " ").capitalize(),
            low=1,
            high=100,
        )

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_bounded_float(
            value, default=15.0, label="Circuit breaker timeout", low=0.0, high=600.0
        )
