"""Protocol definitions (ports) for the sync engine.

The reconcilers, strategies and services depend only on these. The SQLite
adapter and the in-memory test fake implement ``SyncRepository``; the httpx
client implements ``KiojuClientProtocol``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager
    from datetime import datetime

    from linkshelf.adapters.kioju.models import PremiumStatus, RemoteCollection, RemoteLink
    from linkshelf.domain.models import Collection, DeleteMode, EntityType, Link


class KiojuClientProtocol(Protocol):
    async def list_links(self, *, limit: int = 100, offset: int = 0) -> list[RemoteLink]: ...

    async def add_link(
        self,
        *,
        url: str,
        title: str | None = None,
        tags: list[str] | None = None,
        is_private: bool = False,
    ) -> str: ...

    async def update_link(
        self,
        remote_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        is_private: bool | None = None,
        tags: list[str] | None = None,
    ) -> None: ...

    async def delete_link(self, remote_id: str) -> None: ...

    async def list_collections(self) -> list[RemoteCollection]: ...

    async def create_collection(
        self,
        *,
        name: str,
        description: str = "",
        visibility: str = "private",
        tags: list[str] | None = None,
    ) -> str: ...

    async def update_collection(
        self,
        remote_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        visibility: str | None = None,
        tags: list[str] | None = None,
    ) -> None: ...

    async def delete_collection(self, remote_id: str, *, delete_mode: str) -> None: ...

    async def assign_link_to_collection(
        self, link_remote_id: str, collection_remote_id: str | None
    ) -> None: ...

    async def get_collection_links(self, collection_remote_id: str) -> list[RemoteLink]: ...

    async def get_uncategorized_links(self) -> list[RemoteLink]: ...

    async def check_premium_status(self) -> PremiumStatus: ...


class KiojuClientFactory(Protocol):
    def __call__(
        self, api_url: str, api_key: str
    ) -> AbstractAsyncContextManager[KiojuClientProtocol]: ...


class SyncRepository(Protocol):
    # Links -------------------------------------------------------------
    async def async_get_link(self, link_id: int) -> Link | None: ...

    async def async_get_link_by_url(self, url: str) -> Link | None: ...

    async def async_find_link_by_normalized_url(self, url: str) -> Link | None: ...

    async def async_list_links(self) -> list[Link]: ...

    async def async_list_links_in_collection(self, collection: str | None) -> list[Link]: ...

    async def async_insert_link(self, link: Link) -> Link: ...

    async def async_update_link(self, link: Link) -> Link: ...

    async def async_delete_link(self, link_id: int) -> bool: ...

    # Collections -------------------------------------------------------
    async def async_get_collection(self, collection_id: int) -> Collection | None: ...

    async def async_get_collection_by_name(self, name: str) -> Collection | None: ...

    async def async_get_collection_by_remote_id(self, remote_id: str) -> Collection | None: ...

    async def async_list_collections(self) -> list[Collection]: ...

    async def async_insert_collection(self, collection: Collection) -> Collection: ...

    async def async_update_collection(
        self,
        collection: Collection,
        *,
        previous_name: str | None = None,
        mark_links_dirty: bool = True,
    ) -> Collection: ...

    async def async_delete_collection(self, collection_id: int, mode: DeleteMode) -> int: ...

    async def async_get_collection_tags(self, collection_id: int) -> list[str]: ...

    async def async_set_collection_tags(self, collection_id: int, tags: list[str]) -> None: ...

    async def async_update_link_counts(self) -> None: ...

    async def async_remove_collections_missing_remotely(
        self, remote_ids: set[str]
    ) -> list[str]: ...

    async def async_clear_collections(self) -> int: ...

    async def async_count_orphaned_collection_tags(self) -> int: ...

    async def async_delete_orphaned_collection_tags(self) -> int: ...

    # Ledger columns ----------------------------------------------------
    async def async_mark_dirty(self, entity_type: EntityType, entity_id: int) -> None: ...

    async def async_mark_synced(
        self,
        entity_type: EntityType,
        entity_id: int,
        *,
        synced_at: datetime,
        remote_id: str | None = None,
    ) -> None: ...

    async def async_list_pending_links(self) -> list[Link]: ...

    async def async_list_pending_collections(self) -> list[Collection]: ...

    # Settings ----------------------------------------------------------
    async def async_get_setting(self, key: str) -> str | None: ...

    async def async_set_setting(self, key: str, value: str | None) -> None: ...
