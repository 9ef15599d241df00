"""Public sync service composed of the push/pull reconcilers and the conflict gate."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from linkshelf.adapters.kioju.client import KiojuClient
from linkshelf.core.logging_utils import generate_correlation_id
from linkshelf.domain.exceptions.domain_exceptions import AuthenticationError, RemoteSyncError
from linkshelf.security.rate_limiter import RemoteRateLimiter
from linkshelf.sync.conflicts import ConflictDetector, ConflictResolution
from linkshelf.sync.guard import SyncInProgressGuard
from linkshelf.sync.ledger import DirtyStateLedger
from linkshelf.sync.models import FullSyncResult, PullResult, PushResult, SyncStatus, record_error
from linkshelf.sync.pull import PullReconciler
from linkshelf.sync.push import PushReconciler
from linkshelf.utils.retry_utils import is_transient_error

if TYPE_CHECKING:
    from linkshelf.sync.protocols import KiojuClientFactory, SyncRepository
    from linkshelf.sync.settings import SyncSettings

logger = logging.getLogger(__name__)

NO_TOKEN_ERROR = "No API token configured. Please set up your API token in settings."


class SyncService:
    """Explicit push / pull / full sync.

    A thin orchestrator: it opens one client per run, holds the in-progress
    guard, and delegates to the reconcilers. ``push_client_factory`` builds
    the client for uploads, which the push reconciler already retries per
    item; it defaults to ``client_factory``.
    """

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        repository: SyncRepository,
        client_factory: KiojuClientFactory | None = None,
        push_client_factory: KiojuClientFactory | None = None,
        rate_limiter: RemoteRateLimiter | None = None,
        guard: SyncInProgressGuard | None = None,
        push: PushReconciler | None = None,
        pull: PullReconciler | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self._repository = repository
        self._client_factory = client_factory or KiojuClient
        self._push_client_factory = push_client_factory or self._client_factory
        self._rate_limiter = rate_limiter or RemoteRateLimiter()
        self._guard = guard or SyncInProgressGuard()
        self._push = push or PushReconciler(rate_limiter=self._rate_limiter)
        self._pull = pull or PullReconciler(rate_limiter=self._rate_limiter)
        self._conflicts = ConflictDetector(repository)
        self._ledger = DirtyStateLedger(repository)
        self._settings = settings

    @property
    def guard(self) -> SyncInProgressGuard:
        return self._guard

    @property
    def conflicts(self) -> ConflictDetector:
        return self._conflicts

    async def sync_up(self) -> PushResult:
        """Upload all pending changes.

        Raises:
            SyncInProgressError: If another sync is running
        """
        async with self._guard.hold("sync_up"):
            return await self._sync_up(generate_correlation_id())

    async def sync_down(self, *, force_overwrite: bool = False) -> PullResult:
        """Merge remote state into the local store without the conflict gate."""
        async with self._guard.hold("sync_down"):
            return await self._sync_down(generate_correlation_id(), force_overwrite)

    async def pull(
        self, resolution: ConflictResolution = ConflictResolution.ABORT
    ) -> FullSyncResult:
        """Pull guarded by the conflict gate, resolving it as the caller chose."""
        async with self._guard.hold("pull"):
            correlation_id = generate_correlation_id()
            start_time = time.time()
            counts = await self._conflicts.unsynced_counts()
            has_conflict = counts["collections"] > 0 or counts["links"] > 0

            if has_conflict and resolution is ConflictResolution.ABORT:
                message = self._conflicts.conflict_message(counts)
                logger.info(
                    "sync_pull_aborted_conflict",
                    extra={"correlation_id": correlation_id, **counts},
                )
                return FullSyncResult(
                    success=False, conflict=True, message=message, errors=[message]
                )

            push_result: PushResult | None = None
            if has_conflict and resolution is ConflictResolution.PUSH_FIRST:
                push_result = await self._sync_up(correlation_id)
                if not push_result.success:
                    message = "Push failed; pull skipped to protect unsynced changes"
                    return FullSyncResult(
                        success=False,
                        message=message,
                        push=push_result,
                        errors=[message, *push_result.errors],
                        total_duration_seconds=time.time() - start_time,
                    )

            force = resolution is ConflictResolution.FORCE_OVERWRITE
            pull_result = await self._sync_down(correlation_id, force)
            return self._combine(push_result, pull_result, start_time)

    async def full_sync(self, *, resolve_conflicts: bool = False) -> FullSyncResult:
        """Push then pull.

        Without ``resolve_conflicts`` the run stops before any network
        activity when local changes are pending. With it, pending changes are
        pushed and the pull runs with ``force_overwrite``.
        """
        async with self._guard.hold("full_sync"):
            correlation_id = generate_correlation_id()
            start_time = time.time()

            if not resolve_conflicts and await self._conflicts.has_unsynced_changes():
                counts = await self._conflicts.unsynced_counts()
                message = self._conflicts.conflict_message(counts)
                logger.info(
                    "full_sync_conflict", extra={"correlation_id": correlation_id, **counts}
                )
                return FullSyncResult(
                    success=False, conflict=True, message=message, errors=[message]
                )

            push_result = await self._sync_up(correlation_id)
            pull_result = await self._sync_down(correlation_id, resolve_conflicts)
            result = self._combine(push_result, pull_result, start_time)
            logger.info(
                "full_sync_complete",
                extra={
                    "correlation_id": correlation_id,
                    "success": result.success,
                    "collections_synced": push_result.collections_synced,
                    "links_synced": push_result.links_synced,
                    "links_pulled": pull_result.links_pulled,
                    "duration_seconds": result.total_duration_seconds,
                },
            )
            return result

    async def get_sync_status(self) -> SyncStatus:
        collections = await self._repository.async_list_collections()
        links = await self._repository.async_list_links()
        immediate = False
        if self._settings is not None:
            immediate = await self._settings.is_immediate_sync_enabled()
        return SyncStatus(
            collections=_entity_status(collections),
            links=_entity_status(links),
            rate_limit=self._rate_limiter.status().to_dict(),
            immediate_sync_enabled=immediate,
        )

    async def get_pending_changes_count(self) -> dict[str, Any]:
        return await self._ledger.count_pending()

    # -- internals ----------------------------------------------------------

    async def _sync_up(self, correlation_id: str) -> PushResult:
        result = PushResult()
        if not self.api_key:
            record_error(result, NO_TOKEN_ERROR, retryable=False)
            result.success = False
            return result
        try:
            async with self._push_client_factory(self.api_url, self.api_key) as client:
                return await self._push.sync_up(
                    client, self._repository, correlation_id=correlation_id
                )
        except RemoteSyncError as exc:
            record_error(result, f"Sync up failed: {exc}", is_transient_error(exc))
            result.success = False
            if isinstance(exc, AuthenticationError):
                logger.error("sync_up_auth_failed", extra={"correlation_id": correlation_id})
            return result

    async def _sync_down(self, correlation_id: str, force_overwrite: bool) -> PullResult:
        result = PullResult()
        if not self.api_key:
            record_error(result, NO_TOKEN_ERROR, retryable=False)
            result.success = False
            return result
        try:
            async with self._client_factory(self.api_url, self.api_key) as client:
                return await self._pull.sync_down(
                    client,
                    self._repository,
                    force_overwrite=force_overwrite,
                    correlation_id=correlation_id,
                )
        except RemoteSyncError as exc:
            record_error(result, f"Sync down failed: {exc}", is_transient_error(exc))
            result.success = False
            return result

    @staticmethod
    def _combine(
        push_result: PushResult | None, pull_result: PullResult, start_time: float
    ) -> FullSyncResult:
        errors: list[str] = []
        if push_result is not None:
            errors.extend(push_result.errors)
        errors.extend(pull_result.errors)
        if pull_result.skipped and pull_result.message:
            errors.append(pull_result.message)
        success = (push_result is None or push_result.success) and pull_result.success
        message = None
        if errors:
            message = "Full sync failed: " + "; ".join(errors)
        return FullSyncResult(
            success=success,
            message=message,
            push=push_result,
            pull=pull_result,
            errors=errors,
            total_duration_seconds=time.time() - start_time,
        )


def _entity_status(entities: list[Any]) -> dict[str, Any]:
    synced_times = [e.last_synced_at for e in entities if e.last_synced_at is not None]
    return {
        "total": len(entities),
        "dirty": sum(1 for e in entities if e.is_dirty),
        "never_synced": sum(1 for e in entities if e.last_synced_at is None),
        "last_sync": max(synced_times).isoformat() if synced_times else None,
    }
