from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from linkshelf.sync.models import SyncResult

T = TypeVar("T")


@dataclass
class MutationOutcome(Generic[T]):
    """A committed local change plus what happened when it was synced."""

    entity: T | None
    sync: SyncResult
    message: str


@dataclass
class BulkOutcome:
    processed_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    sync: SyncResult | None = None
    message: str = ""

    @property
    def success(self) -> bool:
        return not self.errors and (self.sync is None or self.sync.success)
