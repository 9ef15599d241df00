"""SQLite implementation of the sync engine's store port.

Links, collections, collection tags, ledger columns and app settings all
live in one database. Multi-row mutations run inside a single transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from peewee import fn

from linkshelf.core.time_utils import parse_timestamp, utc_now
from linkshelf.core.url_utils import normalize_url
from linkshelf.db.models import (
    AppSetting,
    Collection as CollectionRow,
    CollectionTag,
    Link as LinkRow,
)
from linkshelf.domain.models import Collection, DeleteMode, EntityType, Link, Visibility
from linkshelf.infrastructure.persistence.sqlite.base import SqliteBaseRepository
from linkshelf.sync.tags import join_tags, slugify_tag, split_tags

if TYPE_CHECKING:
    from collections.abc import Iterable


def _as_datetime(value: Any) -> datetime | None:
    return parse_timestamp(value)


def _link_to_domain(row: LinkRow) -> Link:
    return Link(
        id=row.id,
        url=row.url,
        title=row.title or "",
        notes=row.notes or "",
        tags=split_tags(row.tags),
        collection=row.collection,
        is_private=bool(row.is_private),
        remote_id=row.remote_id,
        is_dirty=bool(row.is_dirty),
        created_at=_as_datetime(row.created_at) or utc_now(),
        updated_at=_as_datetime(row.updated_at) or utc_now(),
        last_synced_at=_as_datetime(row.last_synced_at),
    )


def _collection_to_domain(row: CollectionRow, tags: list[str] | None = None) -> Collection:
    try:
        visibility = Visibility(row.visibility)
    except ValueError:
        visibility = Visibility.PRIVATE
    return Collection(
        id=row.id,
        name=row.name,
        description=row.description or "",
        visibility=visibility,
        tags=list(tags or []),
        link_count=row.link_count or 0,
        remote_id=row.remote_id,
        is_dirty=bool(row.is_dirty),
        created_at=_as_datetime(row.created_at) or utc_now(),
        updated_at=_as_datetime(row.updated_at) or utc_now(),
        last_synced_at=_as_datetime(row.last_synced_at),
    )


def _link_fields(link: Link) -> dict[str, Any]:
    return {
        "url": link.url,
        "normalized_url": normalize_url(link.url),
        "title": link.title or "",
        "notes": link.notes or "",
        "tags": join_tags(link.tags),
        "collection": link.collection,
        "is_private": link.is_private,
        "remote_id": link.remote_id,
        "is_dirty": link.is_dirty,
        "last_synced_at": link.last_synced_at,
        "created_at": link.created_at,
    }


def _collection_fields(collection: Collection) -> dict[str, Any]:
    return {
        "name": collection.name,
        "description": collection.description or "",
        "visibility": collection.visibility.value,
        "link_count": collection.link_count,
        "remote_id": collection.remote_id,
        "is_dirty": collection.is_dirty,
        "last_synced_at": collection.last_synced_at,
        "created_at": collection.created_at,
    }


def _tags_by_collection(collection_ids: Iterable[int]) -> dict[int, list[str]]:
    ids = list(collection_ids)
    grouped: dict[int, list[str]] = {cid: [] for cid in ids}
    if not ids:
        return grouped
    query = (
        CollectionTag.select()
        .where(CollectionTag.collection_id.in_(ids))
        .order_by(CollectionTag.id)
    )
    for row in query:
        grouped.setdefault(row.collection_id, []).append(row.tag_name)
    return grouped


def _replace_tags(collection_id: int, tags: list[str]) -> None:
    """Store ``tags`` in order, keeping the first spelling of each slug."""
    CollectionTag.delete().where(CollectionTag.collection_id == collection_id).execute()
    seen: set[str] = set()
    for tag in tags:
        cleaned = tag.strip()
        if not cleaned:
            continue
        key = slugify_tag(cleaned) or cleaned.lower()
        if key not in seen:
            seen.add(key)
            CollectionTag.create(collection_id=collection_id, tag_name=cleaned)


def _pending_clause(model: type[LinkRow] | type[CollectionRow]) -> Any:
    return (model.is_dirty == True) | (model.last_synced_at.is_null())  # noqa: E712


class SqliteSyncRepositoryAdapter(SqliteBaseRepository):
    """Adapter for link, collection, ledger and settings persistence."""

    # -------------------------------------------------------------------------
    # Links
    # -------------------------------------------------------------------------

    async def async_get_link(self, link_id: int) -> Link | None:
        def _get() -> Link | None:
            row = LinkRow.get_or_none(LinkRow.id == link_id)
            return _link_to_domain(row) if row else None

        return await self._execute(_get, operation_name="get_link", read_only=True)

    async def async_get_link_by_url(self, url: str) -> Link | None:
        def _get() -> Link | None:
            row = LinkRow.get_or_none(LinkRow.url == url)
            return _link_to_domain(row) if row else None

        return await self._execute(_get, operation_name="get_link_by_url", read_only=True)

    async def async_find_link_by_normalized_url(self, url: str) -> Link | None:
        normalized = normalize_url(url)

        def _get() -> Link | None:
            row = (
                LinkRow.select()
                .where(LinkRow.normalized_url == normalized)
                .order_by(LinkRow.id)
                .first()
            )
            return _link_to_domain(row) if row else None

        return await self._execute(
            _get, operation_name="find_link_by_normalized_url", read_only=True
        )

    async def async_list_links(self) -> list[Link]:
        def _list() -> list[Link]:
            query = LinkRow.select().order_by(LinkRow.created_at.desc(), LinkRow.id.desc())
            return [_link_to_domain(row) for row in query]

        return await self._execute(_list, operation_name="list_links", read_only=True)

    async def async_list_links_in_collection(self, collection: str | None) -> list[Link]:
        def _list() -> list[Link]:
            clause = (
                LinkRow.collection.is_null()
                if collection is None
                else (LinkRow.collection == collection)
            )
            query = LinkRow.select().where(clause).order_by(LinkRow.created_at.desc())
            return [_link_to_domain(row) for row in query]

        return await self._execute(
            _list, operation_name="list_links_in_collection", read_only=True
        )

    async def async_insert_link(self, link: Link) -> Link:
        def _insert() -> Link:
            row = LinkRow.create(**_link_fields(link))
            return _link_to_domain(row)

        return await self._execute(_insert, operation_name="insert_link")

    async def async_update_link(self, link: Link) -> Link:
        if link.id is None:
            msg = "Cannot update a link without an id"
            raise ValueError(msg)

        def _update() -> Link:
            fields = _link_fields(link)
            fields["updated_at"] = utc_now()
            LinkRow.update(**fields).where(LinkRow.id == link.id).execute()
            return _link_to_domain(LinkRow.get_by_id(link.id))

        return await self._execute(_update, operation_name="update_link")

    async def async_delete_link(self, link_id: int) -> bool:
        def _delete() -> bool:
            return LinkRow.delete().where(LinkRow.id == link_id).execute() > 0

        return await self._execute(_delete, operation_name="delete_link")

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    async def async_get_collection(self, collection_id: int) -> Collection | None:
        def _get() -> Collection | None:
            row = CollectionRow.get_or_none(CollectionRow.id == collection_id)
            if row is None:
                return None
            return _collection_to_domain(row, _tags_by_collection([row.id])[row.id])

        return await self._execute(_get, operation_name="get_collection", read_only=True)

    async def async_get_collection_by_name(self, name: str) -> Collection | None:
        def _get() -> Collection | None:
            row = CollectionRow.get_or_none(CollectionRow.name == name)
            if row is None:
                return None
            return _collection_to_domain(row, _tags_by_collection([row.id])[row.id])

        return await self._execute(_get, operation_name="get_collection_by_name", read_only=True)

    async def async_get_collection_by_remote_id(self, remote_id: str) -> Collection | None:
        def _get() -> Collection | None:
            row = CollectionRow.get_or_none(CollectionRow.remote_id == remote_id)
            if row is None:
                return None
            return _collection_to_domain(row, _tags_by_collection([row.id])[row.id])

        return await self._execute(
            _get, operation_name="get_collection_by_remote_id", read_only=True
        )

    async def async_list_collections(self) -> list[Collection]:
        def _list() -> list[Collection]:
            rows = list(CollectionRow.select().order_by(CollectionRow.name))
            tags = _tags_by_collection(row.id for row in rows)
            return [_collection_to_domain(row, tags.get(row.id)) for row in rows]

        return await self._execute(_list, operation_name="list_collections", read_only=True)

    async def async_insert_collection(self, collection: Collection) -> Collection:
        def _insert() -> Collection:
            row = CollectionRow.create(**_collection_fields(collection))
            _replace_tags(row.id, collection.tags)
            return _collection_to_domain(row, _tags_by_collection([row.id])[row.id])

        return await self._transaction(_insert, operation_name="insert_collection")

    async def async_update_collection(
        self,
        collection: Collection,
        *,
        previous_name: str | None = None,
        mark_links_dirty: bool = True,
    ) -> Collection:
        """Persist collection fields and tags.

        When ``previous_name`` differs from the new name, member links are
        moved to the new name in the same transaction. Local renames also
        mark those links dirty; renames pulled from the remote do not.
        """
        if collection.id is None:
            msg = "Cannot update a collection without an id"
            raise ValueError(msg)

        def _update() -> Collection:
            now = utc_now()
            fields = _collection_fields(collection)
            fields["updated_at"] = now
            CollectionRow.update(**fields).where(CollectionRow.id == collection.id).execute()
            _replace_tags(collection.id, collection.tags)
            if previous_name is not None and previous_name != collection.name:
                link_fields: dict[str, Any] = {"collection": collection.name, "updated_at": now}
                if mark_links_dirty:
                    link_fields["is_dirty"] = True
                LinkRow.update(**link_fields).where(LinkRow.collection == previous_name).execute()
            row = CollectionRow.get_by_id(collection.id)
            return _collection_to_domain(row, _tags_by_collection([row.id])[row.id])

        return await self._transaction(_update, operation_name="update_collection")

    async def async_delete_collection(self, collection_id: int, mode: DeleteMode) -> int:
        """Delete a collection and handle its links; returns the number of links affected."""

        def _delete() -> int:
            row = CollectionRow.get_or_none(CollectionRow.id == collection_id)
            if row is None:
                return 0
            if mode is DeleteMode.DELETE_LINKS:
                affected = LinkRow.delete().where(LinkRow.collection == row.name).execute()
            else:
                affected = (
                    LinkRow.update(collection=None, is_dirty=True, updated_at=utc_now())
                    .where(LinkRow.collection == row.name)
                    .execute()
                )
            CollectionTag.delete().where(CollectionTag.collection_id == collection_id).execute()
            CollectionRow.delete().where(CollectionRow.id == collection_id).execute()
            return affected

        return await self._transaction(_delete, operation_name="delete_collection")

    async def async_get_collection_tags(self, collection_id: int) -> list[str]:
        def _get() -> list[str]:
            return _tags_by_collection([collection_id])[collection_id]

        return await self._execute(_get, operation_name="get_collection_tags", read_only=True)

    async def async_set_collection_tags(self, collection_id: int, tags: list[str]) -> None:
        await self._transaction(_replace_tags, collection_id, tags, operation_name="set_tags")

    async def async_update_link_counts(self) -> None:
        def _recount() -> None:
            counts = dict(
                LinkRow.select(LinkRow.collection, fn.COUNT(LinkRow.id))
                .where(LinkRow.collection.is_null(False))
                .group_by(LinkRow.collection)
                .tuples()
            )
            for row in CollectionRow.select(CollectionRow.id, CollectionRow.name):
                CollectionRow.update(link_count=counts.get(row.name, 0)).where(
                    CollectionRow.id == row.id
                ).execute()

        await self._transaction(_recount, operation_name="update_link_counts")

    async def async_remove_collections_missing_remotely(self, remote_ids: set[str]) -> list[str]:
        """Drop synced collections the remote no longer has; their links become uncategorized."""

        def _remove() -> list[str]:
            stale = list(
                CollectionRow.select().where(
                    CollectionRow.remote_id.is_null(False)
                    & CollectionRow.remote_id.not_in(list(remote_ids) or [""])
                )
            )
            now = utc_now()
            for row in stale:
                LinkRow.update(collection=None, is_dirty=True, updated_at=now).where(
                    LinkRow.collection == row.name
                ).execute()
                CollectionTag.delete().where(CollectionTag.collection_id == row.id).execute()
                row.delete_instance()
            return [row.name for row in stale]

        return await self._transaction(_remove, operation_name="remove_missing_collections")

    async def async_clear_collections(self) -> int:
        """Remove every collection and tag and uncategorize all links (force overwrite)."""

        def _clear() -> int:
            LinkRow.update(collection=None).where(LinkRow.collection.is_null(False)).execute()
            CollectionTag.delete().execute()
            return CollectionRow.delete().execute()

        return await self._transaction(_clear, operation_name="clear_collections")

    async def async_count_orphaned_collection_tags(self) -> int:
        def _count() -> int:
            return (
                CollectionTag.select()
                .where(CollectionTag.collection_id.not_in(CollectionRow.select(CollectionRow.id)))
                .count()
            )

        return await self._execute(_count, operation_name="count_orphaned_tags", read_only=True)

    async def async_delete_orphaned_collection_tags(self) -> int:
        def _delete() -> int:
            return (
                CollectionTag.delete()
                .where(CollectionTag.collection_id.not_in(CollectionRow.select(CollectionRow.id)))
                .execute()
            )

        return await self._execute(_delete, operation_name="delete_orphaned_tags")

    # -------------------------------------------------------------------------
    # Ledger columns
    # -------------------------------------------------------------------------

    async def async_mark_dirty(self, entity_type: EntityType, entity_id: int) -> None:
        model = LinkRow if entity_type is EntityType.LINK else CollectionRow

        def _mark() -> None:
            model.update(is_dirty=True, updated_at=utc_now()).where(model.id == entity_id).execute()

        await self._execute(_mark, operation_name="mark_dirty")

    async def async_mark_synced(
        self,
        entity_type: EntityType,
        entity_id: int,
        *,
        synced_at: datetime,
        remote_id: str | None = None,
    ) -> None:
        model = LinkRow if entity_type is EntityType.LINK else CollectionRow

        def _mark() -> None:
            fields: dict[str, Any] = {"is_dirty": False, "last_synced_at": synced_at}
            if remote_id is not None:
                fields["remote_id"] = remote_id
            model.update(**fields).where(model.id == entity_id).execute()

        await self._execute(_mark, operation_name="mark_synced")

    async def async_list_pending_links(self) -> list[Link]:
        def _list() -> list[Link]:
            query = (
                LinkRow.select()
                .where(_pending_clause(LinkRow))
                .order_by(LinkRow.updated_at.desc(), LinkRow.id.desc())
            )
            return [_link_to_domain(row) for row in query]

        return await self._execute(_list, operation_name="list_pending_links", read_only=True)

    async def async_list_pending_collections(self) -> list[Collection]:
        def _list() -> list[Collection]:
            rows = list(
                CollectionRow.select()
                .where(_pending_clause(CollectionRow))
                .order_by(CollectionRow.updated_at.desc(), CollectionRow.id.desc())
            )
            tags = _tags_by_collection(row.id for row in rows)
            return [_collection_to_domain(row, tags.get(row.id)) for row in rows]

        return await self._execute(
            _list, operation_name="list_pending_collections", read_only=True
        )

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def async_get_setting(self, key: str) -> str | None:
        def _get() -> str | None:
            row = AppSetting.get_or_none(AppSetting.key == key)
            return row.value if row else None

        return await self._execute(_get, operation_name="get_setting", read_only=True)

    async def async_set_setting(self, key: str, value: str | None) -> None:
        def _set() -> None:
            (
                AppSetting.insert(key=key, value=value, updated_at=utc_now())
                .on_conflict(
                    conflict_target=[AppSetting.key],
                    update={AppSetting.value: value, AppSetting.updated_at: utc_now()},
                )
                .execute()
            )

        await self._execute(_set, operation_name="set_setting")
