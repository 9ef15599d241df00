"""Collection management: validated local mutations plus maintenance queries."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from linkshelf.domain.exceptions.domain_exceptions import (
    DuplicateResourceError,
    ResourceNotFoundError,
    ValidationError,
)
from linkshelf.domain.models import Collection, DeleteMode, Visibility
from linkshelf.services.outcome import MutationOutcome
from linkshelf.sync.messages import format_sync_result_message
from linkshelf.sync.operations import CollectionCreate, CollectionDelete, CollectionUpdate
from linkshelf.sync.tags import normalize_tags, split_tags

if TYPE_CHECKING:
    from collections.abc import Sequence

    from linkshelf.domain.models import Link
    from linkshelf.services.premium_status import PremiumStatusService
    from linkshelf.sync.operations import SyncOperation
    from linkshelf.sync.protocols import SyncRepository
    from linkshelf.sync.strategy import SyncStrategySelector

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000


def validate_collection_fields(
    name: str, description: str | None, visibility: str | Visibility
) -> Visibility:
    """Check user-supplied collection fields and return the parsed visibility.

    Raises:
        ValidationError: On the first rule that fails
    """
    if not name or not name.strip():
        raise ValidationError("Collection name cannot be empty")
    if len(name.strip()) > MAX_NAME_LENGTH:
        raise ValidationError(f"Collection name cannot exceed {MAX_NAME_LENGTH} characters")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Collection description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
        )
    try:
        return Visibility(visibility)
    except ValueError as exc:
        raise ValidationError(
            "Invalid visibility setting", details={"visibility": str(visibility)}
        ) from exc


class CollectionService:
    def __init__(
        self,
        *,
        repository: SyncRepository,
        selector: SyncStrategySelector,
        premium: PremiumStatusService | None = None,
        require_premium: bool = True,
    ) -> None:
        self._repository = repository
        self._selector = selector
        self._premium = premium
        self._require_premium = require_premium and premium is not None

    # -- mutations ----------------------------------------------------------

    async def create_collection(
        self,
        name: str,
        *,
        description: str = "",
        visibility: str | Visibility = Visibility.PRIVATE,
        tags: Sequence[str] | None = None,
    ) -> MutationOutcome[Collection]:
        """Create a collection locally and route a ``CollectionCreate``.

        Raises:
            PremiumRequiredError: If premium is required and the account lacks it
            ValidationError: If a field is invalid
            DuplicateResourceError: If the name is taken
        """
        await self._check_premium()
        parsed_visibility = validate_collection_fields(name, description, visibility)
        name = name.strip()
        if await self._repository.async_get_collection_by_name(name) is not None:
            raise DuplicateResourceError(
                "A collection with this name already exists", details={"name": name}
            )

        collection = await self._repository.async_insert_collection(
            Collection(
                name=name,
                description=description or "",
                visibility=parsed_visibility,
                tags=split_tags(normalize_tags(list(tags or []))),
            )
        )
        logger.info("collection_created", extra={"collection_id": collection.id, "name": name})

        result = await self._selector.execute(CollectionCreate(collection))
        return MutationOutcome(
            entity=await self._refresh(collection),
            sync=result,
            message=format_sync_result_message(result, "Collection created"),
        )

    async def update_collection(
        self,
        collection_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        visibility: str | Visibility | None = None,
        tags: Sequence[str] | None = None,
    ) -> MutationOutcome[Collection]:
        """Apply field changes; a rename carries member links along in the same transaction."""
        await self._check_premium()
        current = await self._get_or_raise(collection_id)

        new_name = name.strip() if name is not None else current.name
        new_description = description if description is not None else current.description
        parsed_visibility = validate_collection_fields(
            new_name,
            new_description,
            visibility if visibility is not None else current.visibility,
        )
        if new_name != current.name:
            existing = await self._repository.async_get_collection_by_name(new_name)
            if existing is not None and existing.id != current.id:
                raise DuplicateResourceError(
                    "A collection with this name already exists", details={"name": new_name}
                )

        changed = replace(
            current,
            name=new_name,
            description=new_description,
            visibility=parsed_visibility,
            tags=split_tags(normalize_tags(list(tags))) if tags is not None else current.tags,
            is_dirty=True,
        )
        updated = await self._repository.async_update_collection(
            changed, previous_name=current.name
        )
        if new_name != current.name:
            logger.info(
                "collection_renamed",
                extra={"collection_id": collection_id, "old": current.name, "new": new_name},
            )

        operation: SyncOperation = (
            CollectionUpdate(updated) if updated.remote_id else CollectionCreate(updated)
        )
        result = await self._selector.execute(operation)
        return MutationOutcome(
            entity=await self._refresh(updated),
            sync=result,
            message=format_sync_result_message(result, "Collection updated"),
        )

    async def delete_collection(
        self, collection_id: int, mode: DeleteMode = DeleteMode.MOVE_LINKS
    ) -> MutationOutcome[Collection]:
        """Remove a collection, moving its links to uncategorized or deleting them."""
        await self._check_premium()
        collection = await self._get_or_raise(collection_id)
        clean_link_ids: tuple[int, ...] = ()
        if mode is DeleteMode.MOVE_LINKS:
            members = await self._repository.async_list_links_in_collection(collection.name)
            clean_link_ids = tuple(
                link.id
                for link in members
                if link.id is not None and link.remote_id and not link.is_pending
            )
        affected = await self._repository.async_delete_collection(collection_id, mode)
        logger.info(
            "collection_deleted",
            extra={"collection_id": collection_id, "mode": mode.value, "links_affected": affected},
        )

        result = await self._selector.execute(
            CollectionDelete(
                collection_id=collection_id,
                remote_id=collection.remote_id,
                mode=mode,
                link_ids=clean_link_ids,
            )
        )
        await self._repository.async_update_link_counts()
        return MutationOutcome(
            entity=collection,
            sync=result,
            message=format_sync_result_message(result, "Collection deleted"),
        )

    # -- queries ------------------------------------------------------------

    async def get_collections(self) -> list[Collection]:
        return await self._repository.async_list_collections()

    async def get_collection_by_name(self, name: str) -> Collection | None:
        return await self._repository.async_get_collection_by_name(name)

    async def get_collection_links(self, name: str) -> list[Link]:
        return await self._repository.async_list_links_in_collection(name)

    async def get_uncategorized_links(self) -> list[Link]:
        return await self._repository.async_list_links_in_collection(None)

    async def update_collection_link_counts(self) -> None:
        await self._repository.async_update_link_counts()

    async def get_collection_statistics(self) -> dict[str, Any]:
        collections = await self._repository.async_list_collections()
        links = await self._repository.async_list_links()
        per_collection = Counter(link.collection for link in links if link.collection is not None)

        largest: dict[str, Any] | None = None
        if per_collection:
            name, count = per_collection.most_common(1)[0]
            largest = {"name": name, "link_count": count}

        return {
            "total_collections": len(collections),
            "total_links": len(links),
            "categorized_links": sum(per_collection.values()),
            "uncategorized_links": sum(1 for link in links if link.collection is None),
            "empty_collections": sum(1 for c in collections if per_collection[c.name] == 0),
            "dirty_collections": sum(1 for c in collections if c.is_dirty),
            "largest_collection": largest,
        }

    # -- maintenance --------------------------------------------------------

    async def validate_database_integrity(self) -> dict[str, Any]:
        """Report dangling references, stale counts and orphaned tags without fixing them."""
        collections = await self._repository.async_list_collections()
        links = await self._repository.async_list_links()
        names = {c.name for c in collections}
        per_collection = Counter(link.collection for link in links if link.collection is not None)
        issues: list[str] = []

        for link in links:
            if link.collection is not None and link.collection not in names:
                issues.append(
                    f"Link {link.id} references non-existent collection '{link.collection}'"
                )
        for collection in collections:
            actual = per_collection[collection.name]
            if collection.link_count != actual:
                issues.append(
                    f"Collection '{collection.name}' link count mismatch: "
                    f"stored {collection.link_count}, actual {actual}"
                )
        remote_ids = Counter(c.remote_id for c in collections if c.remote_id)
        for remote_id, count in remote_ids.items():
            if count > 1:
                issues.append(f"Remote ID {remote_id} is used by {count} collections")

        orphaned = await self._repository.async_count_orphaned_collection_tags()
        if orphaned:
            issues.append(f"{orphaned} orphaned collection tags found")

        if issues:
            logger.warning("database_integrity_issues", extra={"issue_count": len(issues)})
        return {"is_valid": not issues, "issues": issues}

    async def cleanup_orphaned_data(self) -> dict[str, int]:
        """Uncategorize links pointing at missing collections and drop orphaned tags."""
        names = {c.name for c in await self._repository.async_list_collections()}
        uncategorized = 0
        for link in await self._repository.async_list_links():
            if link.collection is not None and link.collection not in names:
                await self._repository.async_update_link(
                    replace(link, collection=None, is_dirty=True)
                )
                uncategorized += 1

        tags_removed = await self._repository.async_delete_orphaned_collection_tags()
        await self._repository.async_update_link_counts()
        logger.info(
            "orphaned_data_cleaned",
            extra={"links_uncategorized": uncategorized, "tags_removed": tags_removed},
        )
        return {"links_uncategorized": uncategorized, "orphaned_tags_removed": tags_removed}

    # ------------------------------------------------------------------

    async def _check_premium(self) -> None:
        if self._require_premium and self._premium is not None:
            await self._premium.require_premium()

    async def _get_or_raise(self, collection_id: int) -> Collection:
        collection = await self._repository.async_get_collection(collection_id)
        if collection is None:
            raise ResourceNotFoundError(
                "Collection not found", details={"collection_id": collection_id}
            )
        return collection

    async def _refresh(self, collection: Collection) -> Collection:
        if collection.id is None:
            return collection
        return await self._repository.async_get_collection(collection.id) or collection
