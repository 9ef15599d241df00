"""Local-first link mutations.

Every mutation validates its input, commits the change to the store as a
dirty row, then hands a ``SyncOperation`` to the strategy selector. A remote
failure is reported in the outcome but never undoes the local write.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from linkshelf.core.url_utils import validate_url
from linkshelf.domain.exceptions.domain_exceptions import (
    DuplicateResourceError,
    ResourceNotFoundError,
    ValidationError,
)
from linkshelf.domain.models import Link
from linkshelf.services.outcome import BulkOutcome, MutationOutcome
from linkshelf.sync.messages import format_sync_result_message
from linkshelf.sync.operations import BulkOperation, LinkCreate, LinkDelete, LinkMove, LinkUpdate
from linkshelf.sync.tags import normalize_tags, split_tags

if TYPE_CHECKING:
    from collections.abc import Sequence

    from linkshelf.sync.operations import SyncOperation
    from linkshelf.sync.protocols import SyncRepository
    from linkshelf.sync.strategy import SyncStrategySelector

logger = logging.getLogger(__name__)


class LinkService:
    def __init__(self, *, repository: SyncRepository, selector: SyncStrategySelector) -> None:
        self._repository = repository
        self._selector = selector

    async def get_link(self, link_id: int) -> Link | None:
        return await self._repository.async_get_link(link_id)

    async def list_links(
        self, *, collection: str | None = None, uncategorized: bool = False
    ) -> list[Link]:
        if uncategorized:
            return await self._repository.async_list_links_in_collection(None)
        if collection is not None:
            return await self._repository.async_list_links_in_collection(collection)
        return await self._repository.async_list_links()

    async def create_link(
        self,
        url: str,
        *,
        title: str = "",
        notes: str = "",
        tags: Sequence[str] | None = None,
        collection: str | None = None,
        is_private: bool = False,
    ) -> MutationOutcome[Link]:
        """Save a new link locally and route a ``LinkCreate``.

        Raises:
            ValidationError: If the URL is empty or malformed
            DuplicateResourceError: If an equivalent URL is already saved
            ResourceNotFoundError: If ``collection`` does not exist
        """
        url = _validated_url(url)
        if await self._repository.async_find_link_by_normalized_url(url) is not None:
            raise DuplicateResourceError(
                "A link with this URL already exists", details={"url": url}
            )
        await self._require_collection(collection)

        link = await self._repository.async_insert_link(
            Link(
                url=url,
                title=title.strip(),
                notes=notes,
                tags=split_tags(normalize_tags(list(tags or []))),
                collection=collection,
                is_private=is_private,
            )
        )
        logger.info("link_created", extra={"link_id": link.id, "collection": collection})

        result = await self._selector.execute(LinkCreate(link))
        if collection is not None:
            await self._repository.async_update_link_counts()
        return MutationOutcome(
            entity=await self._refresh(link),
            sync=result,
            message=format_sync_result_message(result, "Link added"),
        )

    async def update_link(
        self,
        link_id: int,
        *,
        url: str | None = None,
        title: str | None = None,
        notes: str | None = None,
        tags: Sequence[str] | None = None,
        is_private: bool | None = None,
    ) -> MutationOutcome[Link]:
        link = await self._get_or_raise(link_id)
        changes: dict[str, object] = {"is_dirty": True}
        if url is not None and url != link.url:
            url = _validated_url(url)
            existing = await self._repository.async_find_link_by_normalized_url(url)
            if existing is not None and existing.id != link.id:
                raise DuplicateResourceError(
                    "A link with this URL already exists", details={"url": url}
                )
            changes["url"] = url
        if title is not None:
            changes["title"] = title.strip()
        if notes is not None:
            changes["notes"] = notes
        if tags is not None:
            changes["tags"] = split_tags(normalize_tags(list(tags)))
        if is_private is not None:
            changes["is_private"] = is_private

        updated = await self._repository.async_update_link(replace(link, **changes))
        logger.info("link_updated", extra={"link_id": link_id, "fields": sorted(changes)})

        result = await self._selector.execute(_upload_operation(updated))
        return MutationOutcome(
            entity=await self._refresh(updated),
            sync=result,
            message=format_sync_result_message(result, "Link updated"),
        )

    async def delete_link(self, link_id: int) -> MutationOutcome[Link]:
        link = await self._get_or_raise(link_id)
        await self._repository.async_delete_link(link_id)
        logger.info("link_deleted", extra={"link_id": link_id, "remote_id": link.remote_id})

        result = await self._selector.execute(
            LinkDelete(link_id=link_id, remote_id=link.remote_id)
        )
        if link.collection is not None:
            await self._repository.async_update_link_counts()
        return MutationOutcome(
            entity=link,
            sync=result,
            message=format_sync_result_message(result, "Link deleted"),
        )

    async def move_link(
        self, link_id: int, target_collection: str | None
    ) -> MutationOutcome[Link]:
        """Move a link into ``target_collection``; ``None`` makes it uncategorized."""
        link = await self._get_or_raise(link_id)
        await self._require_collection(target_collection)
        moved = await self._repository.async_update_link(
            replace(link, collection=target_collection, is_dirty=True)
        )
        await self._repository.async_update_link_counts()

        result = await self._selector.execute(_move_operation(moved, target_collection))
        return MutationOutcome(
            entity=await self._refresh(moved),
            sync=result,
            message=format_sync_result_message(result, "Link moved"),
        )

    async def move_links_bulk(
        self, link_ids: Sequence[int], target_collection: str | None
    ) -> BulkOutcome:
        outcome = BulkOutcome()
        await self._require_collection(target_collection)

        operations: list[SyncOperation] = []
        for link_id in link_ids:
            link = await self._repository.async_get_link(link_id)
            if link is None:
                outcome.errors.append(f"Link {link_id} not found")
                continue
            moved = await self._repository.async_update_link(
                replace(link, collection=target_collection, is_dirty=True)
            )
            operations.append(_move_operation(moved, target_collection))
            outcome.processed_ids.append(link_id)

        return await self._finish_bulk(outcome, operations, "Bulk move")

    async def delete_links_bulk(self, link_ids: Sequence[int]) -> BulkOutcome:
        outcome = BulkOutcome()
        operations: list[SyncOperation] = []
        for link_id in link_ids:
            link = await self._repository.async_get_link(link_id)
            if link is None:
                outcome.errors.append(f"Link {link_id} not found")
                continue
            await self._repository.async_delete_link(link_id)
            operations.append(LinkDelete(link_id=link_id, remote_id=link.remote_id))
            outcome.processed_ids.append(link_id)

        return await self._finish_bulk(outcome, operations, "Bulk delete")

    # ------------------------------------------------------------------

    async def _finish_bulk(
        self, outcome: BulkOutcome, operations: list[SyncOperation], label: str
    ) -> BulkOutcome:
        if not operations:
            outcome.message = "No links could be processed: " + "; ".join(outcome.errors)
            return outcome

        await self._repository.async_update_link_counts()
        outcome.sync = await self._selector.execute(BulkOperation(operations))
        if outcome.errors:
            outcome.message = (
                f"{label} completed with {len(outcome.errors)} errors: "
                + "; ".join(outcome.errors)
            )
        else:
            noun = "link" if len(operations) == 1 else "links"
            outcome.message = format_sync_result_message(
                outcome.sync, f"{label} of {len(operations)} {noun} completed"
            )
        logger.info(
            "bulk_links_processed",
            extra={
                "label": label,
                "processed": len(outcome.processed_ids),
                "errors": len(outcome.errors),
            },
        )
        return outcome

    async def _get_or_raise(self, link_id: int) -> Link:
        link = await self._repository.async_get_link(link_id)
        if link is None:
            raise ResourceNotFoundError("Link not found", details={"link_id": link_id})
        return link

    async def _require_collection(self, name: str | None) -> None:
        if name is None:
            return
        if await self._repository.async_get_collection_by_name(name) is None:
            raise ResourceNotFoundError("Collection not found", details={"collection": name})

    async def _refresh(self, link: Link) -> Link:
        if link.id is None:
            return link
        return await self._repository.async_get_link(link.id) or link


def _validated_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValidationError("URL cannot be empty")
    try:
        validate_url(url)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"url": url}) from exc
    return url


def _upload_operation(link: Link) -> SyncOperation:
    # A link the remote has never seen must be created, not updated.
    if link.remote_id:
        return LinkUpdate(link)
    return LinkCreate(link)


def _move_operation(link: Link, target_collection: str | None) -> SyncOperation:
    if link.remote_id:
        return LinkMove(link, target_collection)
    return LinkCreate(link)
