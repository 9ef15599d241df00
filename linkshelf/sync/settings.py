from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkshelf.sync.protocols import SyncRepository

logger = logging.getLogger(__name__)

IMMEDIATE_SYNC_KEY = "immediate_sync_enabled"


class SyncSettings:
    """Persisted choice between immediate and manual sync."""

    def __init__(self, repository: SyncRepository, *, default_immediate: bool = False) -> None:
        self._repository = repository
        self._default_immediate = default_immediate

    async def is_immediate_sync_enabled(self) -> bool:
        raw = await self._repository.async_get_setting(IMMEDIATE_SYNC_KEY)
        if raw is None:
            return self._default_immediate
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    async def set_immediate_sync_enabled(self, enabled: bool) -> None:
        await self._repository.async_set_setting(IMMEDIATE_SYNC_KEY, "true" if enabled else "false")
        logger.info("sync_strategy_changed", extra={"immediate_sync_enabled": enabled})
