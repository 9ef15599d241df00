from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _ensure_api_key, _parse_positive_float

DEFAULT_API_URL = "https://kioju.de/api/api.php"
DEFAULT_USER_AGENT = "LinkShelf/1.0"


class KiojuConfig(BaseModel):
    """Remote bookmark service (Kioju) connection settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(default=DEFAULT_API_URL, validation_alias="KIOJU_API_URL")
    api_key: str = Field(default="", validation_alias="KIOJU_API_KEY")
    request_timeout: float = Field(
        default=30.0,
        validation_alias="KIOJU_REQUEST_TIMEOUT",
        description="Per-request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        validation_alias="KIOJU_MAX_RETRIES",
        description="Transport-level retries for connection errors and 5xx responses",
    )
    retry_base_delay: float = Field(default=1.0, validation_alias="KIOJU_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=30.0, validation_alias="KIOJU_RETRY_MAX_DELAY")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, validation_alias="KIOJU_USER_AGENT")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or DEFAULT_API_URL).strip()
        if not url:
            return DEFAULT_API_URL
        if not url.startswith(("http://", "https://")):
            msg = "Kioju API URL must start with http:// or https://"
            raise ValueError(msg)
        return url

    @field_validator("api_key", mode="before")
    @classmethod
    def _validate_api_key(cls, value: Any) -> str:
        return _ensure_api_key(value, name="Kioju")

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_positive_float(value, field="request timeout", default=30.0, maximum=600)

    @field_validator("retry_base_delay", "retry_max_delay", mode="before")
    @classmethod
    def _validate_delays(cls, value: Any, info: ValidationInfo) -> float:
        default = float(cls.model_fields[info.field_name].default)
        return _parse_positive_float(
            value, field=info.field_name.replace("_", " "), default=default, maximum=600
        )

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        if value in (None, ""):
            return 3
        try:
            parsed = int(str(value))
        except ValueError as exc:
            msg = "Kioju max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 10:
            msg = "Kioju max retries must be between 0 and 10"
            raise ValueError(msg)
        return parsed

    @field_validator("user_agent", mode="before")
    @classmethod
    def _validate_user_agent(cls, value: Any) -> str:
        agent = str(value or DEFAULT_USER_AGENT).strip()
        return agent or DEFAULT_USER_AGENT

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)
