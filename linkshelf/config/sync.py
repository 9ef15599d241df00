from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_bool, _parse_positive_float


class SyncConfig(BaseModel):
    """Sync engine behaviour: strategy default, premium gate, rate limits and retries."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    immediate_default: bool = Field(
        default=False,
        validation_alias="SYNC_IMMEDIATE_DEFAULT",
        description="Strategy used when no preference has been persisted yet",
    )
    require_premium: bool = Field(
        default=True,
        validation_alias="SYNC_REQUIRE_PREMIUM",
        description="Gate collection management behind the remote premium check",
    )
    premium_cache_hours: int = Field(default=24, validation_alias="SYNC_PREMIUM_CACHE_HOURS")
    rate_limit_default_seconds: int = Field(
        default=60, validation_alias="SYNC_RATE_LIMIT_DEFAULT_SECONDS"
    )
    rate_limit_max_seconds: int = Field(default=300, validation_alias="SYNC_RATE_LIMIT_MAX_SECONDS")
    retry_max_attempts: int = Field(default=3, validation_alias="SYNC_RETRY_MAX_ATTEMPTS")
    retry_base_delay: float = Field(default=1.0, validation_alias="SYNC_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=30.0, validation_alias="SYNC_RETRY_MAX_DELAY")
    retry_multiplier: float = Field(default=2.0, validation_alias="SYNC_RETRY_MULTIPLIER")
    retry_jitter: float = Field(default=0.1, validation_alias="SYNC_RETRY_JITTER")

    @field_validator("immediate_default", "require_premium", mode="before")
    @classmethod
    def _validate_flags(cls, value: Any, info: ValidationInfo) -> bool:
        default = bool(cls.model_fields[info.field_name].default)
        return _parse_bool(value, default=default)

    @field_validator(
        "premium_cache_hours",
        "rate_limit_default_seconds",
        "rate_limit_max_seconds",
        "retry_max_attempts",
        mode="before",
    )
    @classmethod
    def _validate_int_fields(cls, value: Any, info: ValidationInfo) -> int:
        if value in (None, ""):
            return int(cls.model_fields[info.field_name].default)
        try:
            parsed = int(str(value))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} cannot be negative"
            raise ValueError(msg)
        return parsed

    @field_validator("retry_base_delay", "retry_max_delay", "retry_multiplier", mode="before")
    @classmethod
    def _validate_float_fields(cls, value: Any, info: ValidationInfo) -> float:
        default = float(cls.model_fields[info.field_name].default)
        return _parse_positive_float(
            value, field=info.field_name.replace("_", " "), default=default, maximum=3600
        )

    @field_validator("retry_jitter", mode="before")
    @classmethod
    def _validate_jitter(cls, value: Any) -> float:
        if value in (None, ""):
            return 0.1
        try:
            parsed = float(str(value))
        except ValueError as exc:
            msg = "Retry jitter must be a valid number"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 1:
            msg = "Retry jitter must be between 0 and 1"
            raise ValueError(msg)
        return parsed
