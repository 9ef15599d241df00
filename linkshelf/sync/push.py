"""Push (sync up): upload every pending collection, then every pending link."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from linkshelf.core.time_utils import utc_now
from linkshelf.domain.exceptions.domain_exceptions import ApiError, RemoteSyncError
from linkshelf.domain.models import EntityType
from linkshelf.sync.models import PushResult, record_error
from linkshelf.sync.retry import RetryExecutor

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from linkshelf.domain.models import Collection, Link
    from linkshelf.security.rate_limiter import RemoteRateLimiter
    from linkshelf.sync.protocols import KiojuClientProtocol, SyncRepository

logger = logging.getLogger(__name__)

LINK_CONFLICT_WARNING = "Warning: Link may already exist (409 conflict) - skipping"


def _is_conflict(exc: Exception) -> bool:
    return isinstance(exc, ApiError) and exc.status_code == 409


class PushReconciler:
    def __init__(
        self,
        *,
        retry: RetryExecutor | None = None,
        rate_limiter: RemoteRateLimiter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._retry = retry or RetryExecutor()
        self._rate_limiter = rate_limiter
        self._clock = clock

    async def sync_up(
        self,
        client: KiojuClientProtocol,
        repository: SyncRepository,
        *,
        correlation_id: str,
    ) -> PushResult:
        """Upload pending changes; collections strictly before links.

        Item failures are recorded and leave the item dirty; the run continues.
        Once a rate-limit cooldown is active the remaining items are skipped
        without any request and stay pending.
        """
        start_time = time.time()
        result = PushResult()

        collections = await repository.async_list_pending_collections()
        links = await repository.async_list_pending_links()
        logger.info(
            "sync_up_start",
            extra={
                "correlation_id": correlation_id,
                "pending_collections": len(collections),
                "pending_links": len(links),
            },
        )

        for collection in collections:
            if self._skip_for_cooldown(result):
                continue
            await self._push_collection(client, repository, collection, result, correlation_id)

        for link in links:
            if self._skip_for_cooldown(result):
                continue
            await self._push_link(client, repository, link, result, correlation_id)

        result.success = not result.errors
        result.duration_seconds = time.time() - start_time
        logger.info(
            "sync_up_complete",
            extra={
                "correlation_id": correlation_id,
                "collections_synced": result.collections_synced,
                "links_synced": result.links_synced,
                "items_failed": result.items_failed,
                "items_skipped": result.items_skipped,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    def _skip_for_cooldown(self, result: PushResult) -> bool:
        if self._rate_limiter is None:
            return False
        status = self._rate_limiter.status()
        if not status.is_rate_limited:
            return False
        if result.items_skipped == 0:
            record_error(result, f"Sync up paused: {status.message}", retryable=True)
        result.items_skipped += 1
        return True

    # -- collections --------------------------------------------------------

    async def _push_collection(
        self,
        client: KiojuClientProtocol,
        repository: SyncRepository,
        collection: Collection,
        result: PushResult,
        correlation_id: str,
    ) -> None:
        async def _upload() -> str | None:
            if collection.remote_id:
                await client.update_collection(
                    collection.remote_id,
                    name=collection.name,
                    description=collection.description,
                    visibility=collection.visibility.value,
                    tags=collection.tags,
                )
                return collection.remote_id
            try:
                return await client.create_collection(
                    name=collection.name,
                    description=collection.description,
                    visibility=collection.visibility.value,
                    tags=collection.tags,
                )
            except ApiError as exc:
                if not _is_conflict(exc):
                    raise
                existing = await self._find_remote_collection_id(client, collection.name)
                if existing is None:
                    raise
                logger.info(
                    "sync_up_collection_linked_existing",
                    extra={"correlation_id": correlation_id, "name": collection.name},
                )
                return existing

        remote_id, ok, retryable, error = await self._retry.run(
            _upload,
            operation_name=f"push_collection_{collection.id}",
            correlation_id=correlation_id,
        )
        if not ok:
            result.items_failed += 1
            record_error(result, f"Collection '{collection.name}': {error}", retryable)
            return

        if collection.id is not None:
            await repository.async_mark_synced(
                EntityType.COLLECTION, collection.id, synced_at=self._clock(), remote_id=remote_id
            )
        result.collections_synced += 1

    @staticmethod
    async def _find_remote_collection_id(client: KiojuClientProtocol, name: str) -> str | None:
        for remote in await client.list_collections():
            if remote.id and remote.name == name:
                return remote.id
        return None

    # -- links --------------------------------------------------------------

    async def _push_link(
        self,
        client: KiojuClientProtocol,
        repository: SyncRepository,
        link: Link,
        result: PushResult,
        correlation_id: str,
    ) -> None:
        target_remote_id: str | None = None
        if link.collection is not None:
            collection = await repository.async_get_collection_by_name(link.collection)
            if collection is None or not collection.remote_id:
                result.items_failed += 1
                record_error(
                    result,
                    f"Link '{link.url}': collection '{link.collection}' is not synced",
                    retryable=True,
                )
                return
            target_remote_id = collection.remote_id

        if link.remote_id:
            await self._push_existing_link(
                client, repository, link, target_remote_id, result, correlation_id
            )
        else:
            await self._push_new_link(
                client, repository, link, target_remote_id, result, correlation_id
            )

    async def _push_new_link(
        self,
        client: KiojuClientProtocol,
        repository: SyncRepository,
        link: Link,
        target_remote_id: str | None,
        result: PushResult,
        correlation_id: str,
    ) -> None:
        async def _create() -> str:
            return await client.add_link(
                url=link.url,
                title=link.title or None,
                tags=link.tags,
                is_private=link.is_private,
            )

        remote_id, ok, retryable, error = await self._retry.run(
            _create, operation_name=f"push_link_{link.id}", correlation_id=correlation_id
        )
        if not ok:
            result.items_failed += 1
            if error is not None and _is_conflict(error):
                record_error(result, f"{LINK_CONFLICT_WARNING}: {link.url}", retryable=False)
            else:
                record_error(result, f"Link '{link.url}': {error}", retryable)
            return

        if target_remote_id:
            try:
                await client.assign_link_to_collection(remote_id, target_remote_id)
            except RemoteSyncError as exc:
                logger.warning(
                    "sync_up_link_assign_failed",
                    extra={
                        "correlation_id": correlation_id,
                        "link_id": link.id,
                        "error": str(exc),
                    },
                )

        if link.id is not None:
            await repository.async_mark_synced(
                EntityType.LINK, link.id, synced_at=self._clock(), remote_id=remote_id
            )

        if link.notes:
            # add_link carries no description; notes go in a follow-up update.
            async def _send_notes() -> None:
                await client.update_link(remote_id, description=link.notes)

            _, ok, retryable, error = await self._retry.run(
                _send_notes,
                operation_name=f"push_link_notes_{link.id}",
                correlation_id=correlation_id,
            )
            if not ok:
                if link.id is not None:
                    await repository.async_mark_dirty(EntityType.LINK, link.id)
                result.items_failed += 1
                record_error(result, f"Link '{link.url}': {error}", retryable)
                return

        result.links_synced += 1

    async def _push_existing_link(
        self,
        client: KiojuClientProtocol,
        repository: SyncRepository,
        link: Link,
        target_remote_id: str | None,
        result: PushResult,
        correlation_id: str,
    ) -> None:
        remote_id = link.remote_id or ""

        async def _update() -> None:
            await client.update_link(
                remote_id,
                title=link.title,
                description=link.notes,
                is_private=link.is_private,
                tags=link.tags,
            )
            try:
                await client.assign_link_to_collection(remote_id, target_remote_id)
            except ApiError as exc:
                # Already in that collection.
                if not _is_conflict(exc):
                    raise

        _, ok, retryable, error = await self._retry.run(
            _update, operation_name=f"push_link_{link.id}", correlation_id=correlation_id
        )
        if not ok:
            result.items_failed += 1
            record_error(result, f"Link '{link.url}': {error}", retryable)
            return

        if link.id is not None:
            await repository.async_mark_synced(EntityType.LINK, link.id, synced_at=self._clock())
        result.links_synced += 1
