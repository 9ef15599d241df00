"""Result models for sync strategies and reconcilers."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SyncResultType(str, Enum):
    IMMEDIATE_SUCCESS = "immediate_success"
    IMMEDIATE_PARTIAL_FAILURE = "immediate_partial_failure"
    IMMEDIATE_FAILURE = "immediate_failure"
    MANUAL_QUEUED = "manual_queued"


class SyncResult(BaseModel):
    """Outcome of routing one mutation through the active sync strategy."""

    success: bool
    result_type: SyncResultType
    error_message: str | None = None
    failed_item_ids: list[int] = Field(default_factory=list)
    remote_id: str | None = None

    @classmethod
    def immediate_success(cls, *, remote_id: str | None = None) -> SyncResult:
        return cls(success=True, result_type=SyncResultType.IMMEDIATE_SUCCESS, remote_id=remote_id)

    @classmethod
    def immediate_failure(
        cls, error_message: str, failed_item_ids: list[int] | None = None
    ) -> SyncResult:
        return cls(
            success=False,
            result_type=SyncResultType.IMMEDIATE_FAILURE,
            error_message=error_message,
            failed_item_ids=list(failed_item_ids or []),
        )

    @classmethod
    def immediate_partial_failure(
        cls, error_message: str, failed_item_ids: list[int] | None = None
    ) -> SyncResult:
        return cls(
            success=False,
            result_type=SyncResultType.IMMEDIATE_PARTIAL_FAILURE,
            error_message=error_message,
            failed_item_ids=list(failed_item_ids or []),
        )

    @classmethod
    def manual_queued(cls) -> SyncResult:
        return cls(success=True, result_type=SyncResultType.MANUAL_QUEUED)

    @property
    def is_immediate(self) -> bool:
        return self.result_type is not SyncResultType.MANUAL_QUEUED


class ReconcileResult(BaseModel):
    """Shared error bookkeeping for push and pull runs."""

    success: bool = True
    errors: list[str] = Field(default_factory=list)
    retryable_errors: list[str] = Field(default_factory=list)
    permanent_errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0


class PushResult(ReconcileResult):
    collections_synced: int = 0
    links_synced: int = 0
    items_failed: int = 0
    items_skipped: int = 0


class PullResult(ReconcileResult):
    skipped: bool = False
    message: str | None = None
    collections_updated: int = 0
    collections_removed: int = 0
    links_pulled: int = 0
    links_created: int = 0
    links_updated: int = 0


class FullSyncResult(BaseModel):
    success: bool
    conflict: bool = False
    message: str | None = None
    push: PushResult | None = None
    pull: PullResult | None = None
    errors: list[str] = Field(default_factory=list)
    total_duration_seconds: float = 0.0


class SyncStatus(BaseModel):
    """Snapshot of what is waiting to be uploaded."""

    collections: dict[str, Any] = Field(default_factory=dict)
    links: dict[str, Any] = Field(default_factory=dict)
    rate_limit: dict[str, Any] = Field(default_factory=dict)
    immediate_sync_enabled: bool = False


def record_error(result: ReconcileResult, message: str, retryable: bool) -> None:
    if message not in result.errors:
        result.errors.append(message)
    if retryable:
        result.retryable_errors.append(message)
    else:
        result.permanent_errors.append(message)
