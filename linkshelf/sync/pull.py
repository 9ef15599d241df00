"""Pull (sync down): merge the remote's collections and links into the local store.

Remote data wins for every record it returns. Local rows the remote does not
mention are left alone, except synced collections that vanished remotely.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from linkshelf.core.time_utils import ensure_utc, utc_now
from linkshelf.domain.models import Collection, Link, Visibility
from linkshelf.sync.models import PullResult, record_error
from linkshelf.sync.tags import normalize_tags, split_tags
from linkshelf.utils.retry_utils import is_transient_error

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from linkshelf.adapters.kioju.models import RemoteCollection, RemoteLink
    from linkshelf.security.rate_limiter import RemoteRateLimiter
    from linkshelf.sync.protocols import KiojuClientProtocol, SyncRepository

logger = logging.getLogger(__name__)


class PullReconciler:
    def __init__(
        self,
        *,
        rate_limiter: RemoteRateLimiter,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._clock = clock

    async def sync_down(
        self,
        client: KiojuClientProtocol,
        repository: SyncRepository,
        *,
        force_overwrite: bool = False,
        correlation_id: str,
    ) -> PullResult:
        start_time = time.time()

        status = self._rate_limiter.status()
        if not status.can_make_request:
            logger.warning(
                "sync_down_skipped_rate_limited",
                extra={"correlation_id": correlation_id, "remaining": status.remaining_seconds},
            )
            return PullResult(success=False, skipped=True, message=status.message)

        result = PullResult()
        logger.info(
            "sync_down_start",
            extra={"correlation_id": correlation_id, "force_overwrite": force_overwrite},
        )

        try:
            remote_collections = await client.list_collections()
        except Exception as exc:
            record_error(result, f"Failed to fetch collections: {exc}", is_transient_error(exc))
            result.success = False
            result.duration_seconds = time.time() - start_time
            logger.warning(
                "sync_down_collections_failed",
                extra={"correlation_id": correlation_id, "error": str(exc)},
            )
            return result

        valid = self._valid_collections(remote_collections, result)

        if force_overwrite:
            cleared = await repository.async_clear_collections()
            result.collections_removed = cleared
        else:
            removed = await repository.async_remove_collections_missing_remotely(
                {remote.id for remote in valid if remote.id}
            )
            result.collections_removed = len(removed)
            if removed:
                logger.info(
                    "sync_down_collections_removed",
                    extra={"correlation_id": correlation_id, "names": removed},
                )

        merged: list[RemoteCollection] = []
        for remote in valid:
            if await self._merge_collection(repository, remote, result):
                merged.append(remote)

        for remote in merged:
            try:
                remote_links = await client.get_collection_links(remote.id or "")
            except Exception as exc:
                record_error(
                    result,
                    f"Failed to fetch links for collection '{remote.name}': {exc}",
                    is_transient_error(exc),
                )
                continue
            for remote_link in remote_links:
                await self._merge_link(repository, remote_link, remote.name, result)

        try:
            uncategorized = await client.get_uncategorized_links()
        except Exception as exc:
            record_error(
                result, f"Failed to fetch uncategorized links: {exc}", is_transient_error(exc)
            )
        else:
            for remote_link in uncategorized:
                await self._merge_link(repository, remote_link, None, result)

        await repository.async_update_link_counts()

        result.success = not result.errors
        result.duration_seconds = time.time() - start_time
        logger.info(
            "sync_down_complete",
            extra={
                "correlation_id": correlation_id,
                "collections_updated": result.collections_updated,
                "links_pulled": result.links_pulled,
                "links_created": result.links_created,
                "links_updated": result.links_updated,
                "errors": len(result.errors),
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    @staticmethod
    def _valid_collections(
        remote_collections: list[RemoteCollection], result: PullResult
    ) -> list[RemoteCollection]:
        valid: list[RemoteCollection] = []
        for remote in remote_collections:
            if not remote.id:
                record_error(
                    result, f"Collection has no ID, skipping: {remote.name}", retryable=False
                )
                continue
            if not remote.name or not remote.name.strip():
                record_error(
                    result, f"Collection has no name, skipping ID: {remote.id}", retryable=False
                )
                continue
            valid.append(remote)
        return valid

    async def _merge_collection(
        self, repository: SyncRepository, remote: RemoteCollection, result: PullResult
    ) -> bool:
        now = self._clock()
        name = (remote.name or "").strip()
        remote_id = remote.id or ""
        tags = split_tags(normalize_tags(remote.tags))
        visibility = Visibility(remote.visibility)

        try:
            existing = await repository.async_get_collection_by_remote_id(remote_id)
            if existing is None:
                by_name = await repository.async_get_collection_by_name(name)
                if by_name is not None and by_name.remote_id in (None, remote_id):
                    existing = by_name
                elif by_name is not None:
                    record_error(
                        result,
                        f"Collection '{name}' exists locally with a different remote ID",
                        retryable=False,
                    )
                    return False

            if existing is None:
                await repository.async_insert_collection(
                    Collection(
                        name=name,
                        description=remote.description or "",
                        visibility=visibility,
                        tags=tags,
                        remote_id=remote_id,
                        is_dirty=False,
                        created_at=now,
                        last_synced_at=now,
                    )
                )
            else:
                previous_name = existing.name
                existing.name = name
                existing.description = remote.description or ""
                existing.visibility = visibility
                existing.tags = tags
                existing.remote_id = remote_id
                existing.is_dirty = False
                existing.last_synced_at = now
                await repository.async_update_collection(
                    existing, previous_name=previous_name, mark_links_dirty=False
                )
        except Exception as exc:
            record_error(result, f"Collection '{name}': {exc}", is_transient_error(exc))
            return False

        result.collections_updated += 1
        return True

    async def _merge_link(
        self,
        repository: SyncRepository,
        remote: RemoteLink,
        collection: str | None,
        result: PullResult,
    ) -> None:
        if not remote.url:
            record_error(result, f"Link has no URL, skipping ID: {remote.id}", retryable=False)
            return

        now = self._clock()
        tags = split_tags(normalize_tags(remote.tags))
        try:
            existing = await repository.async_get_link_by_url(remote.url)
            if existing is None:
                existing = await repository.async_find_link_by_normalized_url(remote.url)

            if existing is None:
                await repository.async_insert_link(
                    Link(
                        url=remote.url,
                        title=remote.title or "",
                        notes=remote.description or "",
                        tags=tags,
                        collection=collection,
                        is_private=remote.is_private,
                        remote_id=remote.id,
                        is_dirty=False,
                        created_at=ensure_utc(remote.created_at) or now,
                        last_synced_at=now,
                    )
                )
                result.links_created += 1
            else:
                existing.title = remote.title or existing.title
                existing.notes = remote.description or ""
                existing.tags = tags
                existing.collection = collection
                existing.is_private = remote.is_private
                existing.remote_id = remote.id or existing.remote_id
                existing.is_dirty = False
                existing.last_synced_at = now
                await repository.async_update_link(existing)
                result.links_updated += 1
        except Exception as exc:
            record_error(result, f"Link '{remote.url}': {exc}", is_transient_error(exc))
            return

        result.links_pulled += 1
