"""Bulk import of links from an external source (browser export, file, ...)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from linkshelf.core.url_utils import validate_url
from linkshelf.domain.models import Link
from linkshelf.sync.models import SyncResultType
from linkshelf.sync.operations import ImportOperation
from linkshelf.sync.tags import normalize_tags, split_tags

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from linkshelf.sync.protocols import SyncRepository
    from linkshelf.sync.strategy import SyncStrategySelector

logger = logging.getLogger(__name__)


@dataclass
class ImportCandidate:
    url: str
    title: str = ""
    notes: str = ""
    tags: Any = None
    collection: str | None = None
    is_private: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ImportCandidate:
        return cls(
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            notes=str(data.get("notes") or data.get("description") or ""),
            tags=data.get("tags"),
            collection=data.get("collection") or None,
            is_private=bool(data.get("is_private", False)),
        )


@dataclass
class ImportSyncResult:
    """Counts for one import run and the sentence shown to the user."""

    total_links: int = 0
    saved_links: int = 0
    synced_links: int = 0
    marked_for_sync: int = 0
    failed_to_save: int = 0
    skipped_duplicates: int = 0
    is_immediate: bool = False
    errors: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and (self.saved_links > 0 or self.failed_to_save == 0)

    @property
    def status_message(self) -> str:
        if self.error is not None:
            return f"Import failed: {self.error}"
        if self.saved_links == 0 and self.failed_to_save == 0 and self.skipped_duplicates:
            return f"No new links to import. {self.skipped_duplicates} duplicates skipped."
        if self.failed_to_save > 0:
            return (
                f"{self.saved_links} of {self.total_links} links saved locally. "
                f"{self.failed_to_save} failed to save."
            )
        if self.is_immediate and self.synced_links < self.saved_links:
            failed = self.saved_links - self.synced_links
            return (
                f"{self.synced_links} of {self.saved_links} links synced successfully. "
                f"{failed} failed and were saved locally."
            )
        if self.is_immediate:
            return f"All {self.saved_links} links imported and synced successfully"
        return f"All {self.saved_links} links imported locally. Use sync to upload to server."


class ImportService:
    def __init__(self, *, repository: SyncRepository, selector: SyncStrategySelector) -> None:
        self._repository = repository
        self._selector = selector

    async def import_links(
        self, candidates: Iterable[ImportCandidate | Mapping[str, Any]]
    ) -> ImportSyncResult:
        """Save candidates locally as dirty links, then sync them as one batch.

        Duplicates (by normalized URL, including within the batch) are
        skipped; invalid URLs count as failed to save.
        """
        items = [
            c if isinstance(c, ImportCandidate) else ImportCandidate.from_mapping(c)
            for c in candidates
        ]
        result = ImportSyncResult()
        try:
            saved = await self._save_locally(items, result)
        except Exception as exc:
            logger.exception("import_failed", extra={"error": str(exc)})
            result.error = str(exc)
            return result

        if not saved:
            return result

        sync = await self._selector.execute(ImportOperation(saved))
        result.is_immediate = sync.is_immediate
        if sync.result_type is SyncResultType.MANUAL_QUEUED:
            result.marked_for_sync = len(saved)
        else:
            failed = len(set(sync.failed_item_ids))
            result.synced_links = len(saved) - failed
            result.marked_for_sync = failed
            if sync.error_message:
                result.errors.append(sync.error_message)

        logger.info(
            "import_complete",
            extra={
                "total": result.total_links,
                "saved": result.saved_links,
                "synced": result.synced_links,
                "skipped_duplicates": result.skipped_duplicates,
                "failed_to_save": result.failed_to_save,
            },
        )
        return result

    async def _save_locally(
        self, items: list[ImportCandidate], result: ImportSyncResult
    ) -> list[Link]:
        saved: list[Link] = []
        known_collections = {c.name for c in await self._repository.async_list_collections()}
        touched_collection = False

        for item in items:
            url = item.url.strip()
            if not url:
                continue
            result.total_links += 1
            try:
                validate_url(url)
            except ValueError as exc:
                result.failed_to_save += 1
                result.errors.append(f"{url}: {exc}")
                continue
            if await self._repository.async_find_link_by_normalized_url(url) is not None:
                result.skipped_duplicates += 1
                continue

            collection = item.collection if item.collection in known_collections else None
            link = await self._repository.async_insert_link(
                Link(
                    url=url,
                    title=item.title.strip(),
                    notes=item.notes,
                    tags=split_tags(normalize_tags(item.tags)),
                    collection=collection,
                    is_private=item.is_private,
                )
            )
            touched_collection = touched_collection or collection is not None
            saved.append(link)
            result.saved_links += 1

        if touched_collection:
            await self._repository.async_update_link_counts()
        return saved
