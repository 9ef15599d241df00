from __future__ import annotations

from .link import Collection, DeleteMode, EntityType, Link, Visibility

__all__ = [
    "Collection",
    "DeleteMode",
    "EntityType",
    "Link",
    "Visibility",
]
