"""Link and Collection domain models.

Plain dataclasses shared by the store adapters, services and reconcilers.
They carry the ledger columns (``is_dirty``, ``last_synced_at``) alongside
the user-visible fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from linkshelf.core.time_utils import utc_now


class Visibility(str, Enum):
    """Collection visibility on the remote service."""

    PUBLIC = "public"
    PRIVATE = "private"
    HIDDEN = "hidden"


class DeleteMode(str, Enum):
    """What happens to member links when a collection is deleted."""

    MOVE_LINKS = "move_links"
    DELETE_LINKS = "delete_links"


class EntityType(str, Enum):
    LINK = "link"
    COLLECTION = "collection"


@dataclass
class Link:
    """A bookmarked URL.

    ``collection`` holds the collection *name*; ``None`` means uncategorized.
    """

    url: str
    title: str = ""
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    collection: str | None = None
    is_private: bool = False
    remote_id: str | None = None
    is_dirty: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_synced_at: datetime | None = None
    id: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.is_dirty or self.last_synced_at is None


@dataclass
class Collection:
    """A named group of links, optionally mirrored on the remote service."""

    name: str
    description: str = ""
    visibility: Visibility = Visibility.PRIVATE
    tags: list[str] = field(default_factory=list)
    link_count: int = 0
    remote_id: str | None = None
    is_dirty: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_synced_at: datetime | None = None
    id: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.is_dirty or self.last_synced_at is None
