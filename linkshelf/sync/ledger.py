"""Dirty-state ledger.

A thin, stateless facade over the ledger columns (``is_dirty`` and
``last_synced_at``) kept on every link and collection row. An entity is
*pending* when it is dirty or has never been synced.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from linkshelf.core.time_utils import utc_now
from linkshelf.domain.models import EntityType

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from linkshelf.domain.models import Collection, Link
    from linkshelf.sync.protocols import SyncRepository

logger = logging.getLogger(__name__)


class DirtyStateLedger:
    def __init__(
        self,
        repository: SyncRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._clock = clock

    async def mark_dirty(self, entity_type: EntityType, entity_id: int) -> None:
        await self._repository.async_mark_dirty(entity_type, entity_id)

    async def mark_synced(
        self,
        entity_type: EntityType,
        entity_id: int,
        *,
        synced_at: datetime | None = None,
        remote_id: str | None = None,
    ) -> None:
        await self._repository.async_mark_synced(
            entity_type,
            entity_id,
            synced_at=synced_at or self._clock(),
            remote_id=remote_id,
        )
        logger.debug(
            "ledger_marked_synced",
            extra={
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "remote_id": remote_id,
            },
        )

    async def list_pending(self, entity_type: EntityType) -> list[Link] | list[Collection]:
        """Pending rows, most recently updated first."""
        if entity_type is EntityType.LINK:
            return await self._repository.async_list_pending_links()
        return await self._repository.async_list_pending_collections()

    async def count_pending(self) -> dict[str, Any]:
        links = await self._repository.async_list_pending_links()
        collections = await self._repository.async_list_pending_collections()
        return {
            "dirty_links": sum(1 for link in links if link.is_dirty),
            "new_links": sum(1 for link in links if link.remote_id is None),
            "dirty_collections": sum(1 for c in collections if c.is_dirty),
            "new_collections": sum(1 for c in collections if c.remote_id is None),
            "total": len(links) + len(collections),
        }
