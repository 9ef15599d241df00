from __future__ import annotations

from typing import Any


def _ensure_api_key(value: Any, *, name: str) -> str:
    if value in (None, ""):
        return ""
    key = str(value).strip()
    if len(key) > 500:
        msg = f"{name} API key appears to be too long"
        raise ValueError(msg)
    if any(char in key for char in [" ", "\n", "\t"]):
        msg = f"{name} API key contains invalid characters"
        raise ValueError(msg)
    return key


def _parse_bool(value: Any, *, default: bool) -> bool:
    if value in (None, ""):
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    msg = f"Invalid boolean value: {value}"
    raise ValueError(msg)


def _parse_positive_float(value: Any, *, field: str, default: float, maximum: float) -> float:
    if value in (None, ""):
        return default
    try:
        parsed = float(str(value))
    except ValueError as exc:
        msg = f"{field} must be a valid number"
        raise ValueError(msg) from exc
    if parsed <= 0:
        msg = f"{field.capitalize()} must be positive"
        raise ValueError(msg)
    if parsed > maximum:
        msg = f"{field.capitalize()} must be {maximum:g} or less"
        raise ValueError(msg)
    return parsed
