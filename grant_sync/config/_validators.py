from __future__ import annotations

from typing import Any


def _ensure_api_key(value: str, *, name: str) -> str:
    if not value:
        msg = f"{name} API key is required"
        raise ValueError(msg)
    value = value.strip()
    if not value:
        msg = f"{name} API key is required"
        raise ValueError(msg)
    if len(value) > 500:
        msg = f"{name} API key appears to be too long"
        raise ValueError(msg)
    if any(char in value for char in [" ", "\n", "\t"]):
        msg = f"{name} API key contains invalid characters"
        raise ValueError(msg)
    return value


def _parse_bounded_int(value: Any, *, default: int, label: str, low: int, high: int) -> int:
    try:
        parsed = int(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{label} must be a valid integer"
        raise ValueError(msg) from exc
    if parsed < low or parsed > high:
        msg = f"{label} must be between {low} and {high}"
        raise ValueError(msg)
    return parsed


def _parse_bounded_float(
    value: Any, *, default: float, label: str, low: float, high: float
) -> float:
    try:
        parsed = float(str(value if value not in (None, "") else default))
    except ValueError as exc:
        msg = f"{label} must be a valid number"
        raise ValueError(msg) from exc
    if parsed < low or parsed > high:
        msg = f"{label} must be between {low:g} and {high:g}"
        raise ValueError(msg)
    return parsed
