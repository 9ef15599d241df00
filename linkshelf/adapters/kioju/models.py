"""Pydantic models for the Kioju API."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


def _coerce_id(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


class RemoteLink(BaseModel):
    """Link record as returned by the remote service.

    ``tags`` is kept raw (list of strings, list of tag objects, or a joined
    string) for the tag normalizer.
    """

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "remote_id"))
    url: str | None = Field(default=None, validation_alias=AliasChoices("url", "link"))
    title: str | None = None
    description: str | None = None
    is_private: bool = False
    tags: Any = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str | None:
        return _coerce_id(value)

    @field_validator("is_private", mode="before")
    @classmethod
    def _validate_is_private(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int | float):
            return value == 1
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        return False

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _validate_timestamps(cls, value: Any) -> Any:
        # The service sends "" or "0000-00-00 00:00:00" for unknown dates.
        if value in (None, "") or (isinstance(value, str) and value.startswith("0000")):
            return None
        return value


class RemoteCollection(BaseModel):
    """Collection record as returned by ``collections_list``."""

    id: str | None = None
    name: str | None = None
    description: str | None = None
    visibility: str = "private"
    tags: Any = None
    link_count: int = 0

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str | None:
        return _coerce_id(value)

    @field_validator("visibility", mode="before")
    @classmethod
    def _validate_visibility(cls, value: Any) -> str:
        text = str(value or "private").strip().lower()
        return text if text in {"public", "private", "hidden"} else "private"

    @field_validator("link_count", mode="before")
    @classmethod
    def _validate_link_count(cls, value: Any) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0


class PremiumStatus(BaseModel):
    is_premium: bool = False
    message: str | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ActionResponse(BaseModel):
    """Generic ``{"success": ..., "message": ...}`` envelope."""

    success: bool = True
    message: str | None = Field(default=None, validation_alias=AliasChoices("message", "error"))

    model_config = {"populate_by_name": True, "extra": "ignore"}


class AddLinkResponse(ActionResponse):
    id: str | None = None
    link: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str | None:
        return _coerce_id(value)

    @property
    def remote_id(self) -> str | None:
        if self.id:
            return self.id
        if self.link:
            return _coerce_id(self.link.get("id"))
        return None


class CollectionListResponse(ActionResponse):
    collections: list[RemoteCollection] = Field(default_factory=list)


class CreateCollectionResponse(ActionResponse):
    id: str | None = None
    collection: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str | None:
        return _coerce_id(value)

    @property
    def remote_id(self) -> str | None:
        if self.collection:
            nested = _coerce_id(self.collection.get("id"))
            if nested:
                return nested
        return self.id


class LinkListResponse(ActionResponse):
    links: list[RemoteLink] = Field(default_factory=list)
