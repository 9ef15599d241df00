from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from linkshelf.domain.exceptions.domain_exceptions import SyncInProgressError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class SyncInProgressGuard:
    """Allows one logical sync at a time; a second caller is refused, not queued."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._current: str | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def current_operation(self) -> str | None:
        return self._current

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        if self._lock.locked():
            msg = f"Another sync operation is in progress ({self._current})"
            raise SyncInProgressError(msg, details={"running": self._current})
        async with self._lock:
            self._current = operation
            try:
                yield
            finally:
                self._current = None
