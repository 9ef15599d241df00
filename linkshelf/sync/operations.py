"""Mutations that can be routed through a sync strategy.

Each variant carries what the immediate strategy needs to replay the change
remotely and names itself with a stable ``operation_id``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkshelf.domain.models import Collection, DeleteMode, Link


@dataclass(frozen=True)
class LinkCreate:
    link: Link

    @property
    def operation_id(self) -> str:
        return f"link_create_{self.link.id}"

    @property
    def operation_type(self) -> str:
        return "LinkCreate"

    @property
    def local_ids(self) -> list[int]:
        return [self.link.id] if self.link.id is not None else []


@dataclass(frozen=True)
class LinkUpdate:
    link: Link

    @property
    def operation_id(self) -> str:
        return f"link_update_{self.link.id}"

    @property
    def operation_type(self) -> str:
        return "LinkUpdate"

    @property
    def local_ids(self) -> list[int]:
        return [self.link.id] if self.link.id is not None else []


@dataclass(frozen=True)
class LinkDelete:
    link_id: int
    remote_id: str | None

    @property
    def operation_id(self) -> str:
        return f"link_delete_{self.link_id}"

    @property
    def operation_type(self) -> str:
        return "LinkDelete"

    @property
    def local_ids(self) -> list[int]:
        return [self.link_id]


@dataclass(frozen=True)
class LinkMove:
    link: Link
    target_collection: str | None

    @property
    def operation_id(self) -> str:
        return f"link_move_{self.link.id}"

    @property
    def operation_type(self) -> str:
        return "LinkMove"

    @property
    def local_ids(self) -> list[int]:
        return [self.link.id] if self.link.id is not None else []


@dataclass(frozen=True)
class CollectionCreate:
    collection: Collection

    @property
    def operation_id(self) -> str:
        return f"collection_create_{self.collection.id or self.collection.name}"

    @property
    def operation_type(self) -> str:
        return "CollectionCreate"

    @property
    def local_ids(self) -> list[int]:
        return [self.collection.id] if self.collection.id is not None else []


@dataclass(frozen=True)
class CollectionUpdate:
    collection: Collection

    @property
    def operation_id(self) -> str:
        return f"collection_update_{self.collection.id or self.collection.remote_id}"

    @property
    def operation_type(self) -> str:
        return "CollectionUpdate"

    @property
    def local_ids(self) -> list[int]:
        return [self.collection.id] if self.collection.id is not None else []


@dataclass(frozen=True)
class CollectionDelete:
    collection_id: int
    remote_id: str | None
    mode: DeleteMode
    # Member links that were in sync before a MOVE_LINKS delete.
    link_ids: tuple[int, ...] = ()

    @property
    def operation_id(self) -> str:
        return f"collection_delete_{self.collection_id or self.remote_id}"

    @property
    def operation_type(self) -> str:
        return "CollectionDelete"

    @property
    def local_ids(self) -> list[int]:
        return [self.collection_id]


@dataclass(frozen=True)
class BulkOperation:
    operations: list[SyncOperation] = field(default_factory=list)

    @property
    def operation_id(self) -> str:
        return f"bulk_operation_{len(self.operations)}_items"

    @property
    def operation_type(self) -> str:
        return "BulkOperation"

    @property
    def local_ids(self) -> list[int]:
        return [item_id for op in self.operations for item_id in op.local_ids]


@dataclass(frozen=True)
class ImportOperation:
    links: list[Link] = field(default_factory=list)

    @property
    def operation_id(self) -> str:
        return f"import_operation_{len(self.links)}_links"

    @property
    def operation_type(self) -> str:
        return "ImportOperation"

    @property
    def local_ids(self) -> list[int]:
        return [link.id for link in self.links if link.id is not None]


SyncOperation = (
    LinkCreate
    | LinkUpdate
    | LinkDelete
    | LinkMove
    | CollectionCreate
    | CollectionUpdate
    | CollectionDelete
    | BulkOperation
    | ImportOperation
)
