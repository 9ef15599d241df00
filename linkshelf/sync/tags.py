"""Tag normalization for links coming back from the remote service.

The remote API is inconsistent about tags: sometimes a list of strings,
sometimes a list of objects, sometimes an already-joined string. Everything
is reduced to the local comma-separated form.
"""

from __future__ import annotations

import re
from typing import Any

__all__ = ["join_tags", "normalize_tags", "parse_tag_item", "slugify_tag", "split_tags"]

_OBJECT_KEYS = ("slug", "name", "title")

_INVALID_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_REPEATED_DASH = re.compile(r"-+")


def slugify_tag(name: str) -> str:
    """Lowercase, drop characters outside ``[a-z0-9 -]``, dash-join words."""
    slug = _INVALID_SLUG_CHARS.sub("", (name or "").lower())
    slug = _WHITESPACE.sub("-", slug.strip())
    slug = _REPEATED_DASH.sub("-", slug)
    return slug.strip("-")


def parse_tag_item(item: Any) -> str | None:
    """Reduce one element of a remote tag list to a tag string, or None to drop it."""
    if isinstance(item, str):
        text = item.strip()
        return text or None
    if isinstance(item, dict):
        for key in _OBJECT_KEYS:
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None
    return None


def normalize_tags(raw: Any) -> str:
    """Return the comma-joined local tag string for any remote tag shape."""
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list | tuple):
        parsed = (parse_tag_item(item) for item in raw)
        return ",".join(tag for tag in parsed if tag)
    return ""


def split_tags(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def join_tags(tags: list[str] | None) -> str:
    return ",".join(tag.strip() for tag in (tags or []) if tag and tag.strip())
