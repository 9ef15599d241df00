"""Gate that stops a pull from silently overwriting local edits."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkshelf.sync.protocols import SyncRepository


class ConflictResolution(str, Enum):
    ABORT = "abort"
    PUSH_FIRST = "push_first"
    FORCE_OVERWRITE = "force_overwrite"


class ConflictDetector:
    def __init__(self, repository: SyncRepository) -> None:
        self._repository = repository

    async def unsynced_counts(self) -> dict[str, int]:
        collections = await self._repository.async_list_pending_collections()
        links = await self._repository.async_list_pending_links()
        return {"collections": len(collections), "links": len(links)}

    async def has_unsynced_changes(self) -> bool:
        counts = await self.unsynced_counts()
        return counts["collections"] > 0 or counts["links"] > 0

    @staticmethod
    def conflict_message(counts: dict[str, int]) -> str:
        return (
            f"Sync conflict: {counts['collections']} collections and {counts['links']} links "
            "have unsynced changes. Sync up first or use resolveConflicts=true."
        )
