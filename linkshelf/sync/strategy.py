"""Immediate vs. manual sync strategies and the selector between them.

Local writes are committed before a strategy runs. A remote failure never
rolls them back: the entity stays dirty and the next push retries it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from linkshelf.adapters.kioju.client import KiojuClient
from linkshelf.core.logging_utils import generate_correlation_id
from linkshelf.domain.exceptions.domain_exceptions import (
    PartialBatchFailure,
    RemoteSyncError,
    SyncInProgressError,
    ValidationError,
)
from linkshelf.domain.models import DeleteMode, EntityType
from linkshelf.sync.models import SyncResult
from linkshelf.sync.operations import (
    BulkOperation,
    CollectionCreate,
    CollectionDelete,
    CollectionUpdate,
    ImportOperation,
    LinkCreate,
    LinkDelete,
    LinkMove,
    LinkUpdate,
)
from linkshelf.sync.retry import RetryExecutor

if TYPE_CHECKING:
    from linkshelf.domain.models import Link
    from linkshelf.sync.guard import SyncInProgressGuard
    from linkshelf.sync.ledger import DirtyStateLedger
    from linkshelf.sync.operations import SyncOperation
    from linkshelf.sync.protocols import (
        KiojuClientFactory,
        KiojuClientProtocol,
        SyncRepository,
    )
    from linkshelf.sync.settings import SyncSettings

logger = logging.getLogger(__name__)

NO_TOKEN_MESSAGE = "No API token configured. Please set up your API token in settings."


class SyncStrategy(Protocol):
    name: str

    async def execute(self, operation: SyncOperation) -> SyncResult: ...


class ManualSyncStrategy:
    """Leave everything dirty for the next explicit push."""

    name = "manual"

    async def execute(self, operation: SyncOperation) -> SyncResult:
        logger.debug(
            "sync_operation_queued",
            extra={"operation_id": operation.operation_id, "operation": operation.operation_type},
        )
        return SyncResult.manual_queued()


class ImmediateSyncStrategy:
    """Replay each mutation against the remote service right away."""

    name = "immediate"

    def __init__(
        self,
        *,
        repository: SyncRepository,
        ledger: DirtyStateLedger,
        api_url: str,
        api_key: str,
        client_factory: KiojuClientFactory | None = None,
        retry: RetryExecutor | None = None,
        guard: SyncInProgressGuard | None = None,
    ) -> None:
        self._repository = repository
        self._ledger = ledger
        self.api_url = api_url
        self.api_key = api_key
        self._client_factory = client_factory or KiojuClient
        self._retry = retry or RetryExecutor()
        self._guard = guard

    async def execute(self, operation: SyncOperation) -> SyncResult:
        if not self.api_key:
            return SyncResult.immediate_failure(NO_TOKEN_MESSAGE, operation.local_ids)

        correlation_id = generate_correlation_id()
        try:
            if self._guard is None:
                return await self._execute_with_client(operation, correlation_id)
            async with self._guard.hold(operation.operation_id):
                return await self._execute_with_client(operation, correlation_id)
        except SyncInProgressError as exc:
            logger.info(
                "immediate_sync_deferred_busy",
                extra={"correlation_id": correlation_id, "operation_id": operation.operation_id},
            )
            return SyncResult.immediate_failure(exc.message, operation.local_ids)

    async def _execute_with_client(
        self, operation: SyncOperation, correlation_id: str
    ) -> SyncResult:
        async with self._client_factory(self.api_url, self.api_key) as client:
            batch: list[SyncOperation]
            if isinstance(operation, BulkOperation):
                batch, label = list(operation.operations), "Bulk operation"
            elif isinstance(operation, ImportOperation):
                batch, label = [LinkCreate(link) for link in operation.links], "Import"
            else:
                return await self._execute_one(client, operation, correlation_id)

            try:
                await self._execute_batch(client, batch, correlation_id, label=label)
            except PartialBatchFailure as exc:
                if exc.details.get("succeeded"):
                    return SyncResult.immediate_partial_failure(exc.message, exc.failed_item_ids)
                return SyncResult.immediate_failure(exc.message, exc.failed_item_ids)
            return SyncResult.immediate_success()

    async def _execute_one(
        self, client: KiojuClientProtocol, operation: SyncOperation, correlation_id: str
    ) -> SyncResult:
        ok, error, remote_id = await self._attempt(client, operation, correlation_id)
        if ok:
            logger.info(
                "immediate_sync_succeeded",
                extra={"correlation_id": correlation_id, "operation_id": operation.operation_id},
            )
            return SyncResult.immediate_success(remote_id=remote_id)

        logger.warning(
            "immediate_sync_failed",
            extra={
                "correlation_id": correlation_id,
                "operation_id": operation.operation_id,
                "error": str(error),
            },
        )
        return SyncResult.immediate_failure(f"Sync failed: {error}", operation.local_ids)

    async def _execute_batch(
        self,
        client: KiojuClientProtocol,
        operations: list[SyncOperation],
        correlation_id: str,
        *,
        label: str,
    ) -> None:
        """Attempt every operation in order; failures do not stop the batch.

        Raises:
            PartialBatchFailure: If any item failed. ``details["succeeded"]``
                counts the items that were committed remotely.
        """
        total = len(operations)
        succeeded = 0
        errors: list[str] = []
        failed_ids: list[int] = []

        for operation in operations:
            ok, error, _ = await self._attempt(client, operation, correlation_id)
            if ok:
                succeeded += 1
                continue
            item_id = operation.local_ids[0] if operation.local_ids else operation.operation_id
            errors.append(f"{operation.operation_type} ({item_id}): {error}")
            failed_ids.extend(operation.local_ids)

        logger.info(
            "immediate_batch_complete",
            extra={
                "correlation_id": correlation_id,
                "label": label,
                "total": total,
                "succeeded": succeeded,
                "items_failed": len(errors),
            },
        )

        if not errors:
            return

        joined = "; ".join(errors)
        if succeeded == 0:
            prefix = "Import sync" if label == "Import" else "Bulk operation"
            message = f"{prefix} failed completely. Errors: {joined}"
        elif label == "Import":
            message = (
                f"Import partially completed: {succeeded}/{total} links synced. "
                f"Errors: {joined}"
            )
        else:
            message = (
                f"Bulk operation partially completed: {succeeded}/{total} succeeded. "
                f"Errors: {joined}"
            )
        raise PartialBatchFailure(
            message, failed_ids, details={"succeeded": succeeded, "total": total}
        )

    async def _attempt(
        self, client: KiojuClientProtocol, operation: SyncOperation, correlation_id: str
    ) -> tuple[bool, Exception | None, str | None]:
        """Run one operation with retries and update the ledger either way."""

        async def _call() -> str | None:
            return await self._apply_remote(client, operation)

        remote_id, ok, _, error = await self._retry.run(
            _call, operation_name=operation.operation_id, correlation_id=correlation_id
        )
        if not ok:
            await self._record_failure(operation)
            return False, error, None

        await self._record_success(operation, remote_id)
        if isinstance(operation, LinkCreate) and operation.link.notes and remote_id:
            # add_link carries no description; notes go in a follow-up update.
            notes = operation.link.notes

            async def _send_notes() -> None:
                await client.update_link(remote_id, description=notes)

            _, ok, _, error = await self._retry.run(
                _send_notes,
                operation_name=f"{operation.operation_id}_notes",
                correlation_id=correlation_id,
            )
            if not ok:
                await self._record_failure(operation)
                return False, error, None
        return True, None, remote_id

    async def _apply_remote(
        self, client: KiojuClientProtocol, operation: SyncOperation
    ) -> str | None:
        if isinstance(operation, LinkCreate):
            return await self._create_link(client, operation.link)

        if isinstance(operation, LinkUpdate):
            link = operation.link
            if not link.remote_id:
                raise ValidationError("Cannot update link: no remote ID")
            await client.update_link(
                link.remote_id,
                title=link.title,
                description=link.notes,
                is_private=link.is_private,
                tags=link.tags,
            )
            return link.remote_id

        if isinstance(operation, LinkDelete):
            if operation.remote_id:
                await client.delete_link(operation.remote_id)
            return None

        if isinstance(operation, LinkMove):
            link = operation.link
            if not link.remote_id:
                raise ValidationError("Cannot move link: no remote ID")
            target_remote_id: str | None = None
            if operation.target_collection is not None:
                target = await self._repository.async_get_collection_by_name(
                    operation.target_collection
                )
                if target is None or not target.remote_id:
                    raise ValidationError(
                        "Cannot move link: target collection not found or not synced"
                    )
                target_remote_id = target.remote_id
            await client.assign_link_to_collection(link.remote_id, target_remote_id)
            return link.remote_id

        if isinstance(operation, CollectionCreate):
            collection = operation.collection
            return await client.create_collection(
                name=collection.name,
                description=collection.description,
                visibility=collection.visibility.value,
                tags=collection.tags,
            )

        if isinstance(operation, CollectionUpdate):
            collection = operation.collection
            if not collection.remote_id:
                raise ValidationError("Cannot update collection: no remote ID")
            await client.update_collection(
                collection.remote_id,
                name=collection.name,
                description=collection.description,
                visibility=collection.visibility.value,
                tags=collection.tags,
            )
            return collection.remote_id

        if isinstance(operation, CollectionDelete):
            if operation.remote_id:
                await client.delete_collection(
                    operation.remote_id, delete_mode=operation.mode.value
                )
            return None

        msg = f"Unsupported sync operation: {operation.operation_type}"
        raise ValidationError(msg)

    async def _create_link(self, client: KiojuClientProtocol, link: Link) -> str:
        remote_id = await client.add_link(
            url=link.url, title=link.title or None, tags=link.tags, is_private=link.is_private
        )
        if link.collection:
            collection = await self._repository.async_get_collection_by_name(link.collection)
            if collection is not None and collection.remote_id:
                try:
                    await client.assign_link_to_collection(remote_id, collection.remote_id)
                except RemoteSyncError as exc:
                    logger.warning(
                        "link_collection_assign_failed",
                        extra={"link_id": link.id, "remote_id": remote_id, "error": str(exc)},
                    )
        return remote_id

    async def _record_success(self, operation: SyncOperation, remote_id: str | None) -> None:
        if isinstance(operation, CollectionDelete):
            # The remote moves member links to uncategorized, matching the local rows.
            if operation.remote_id and operation.mode is DeleteMode.MOVE_LINKS:
                for link_id in operation.link_ids:
                    await self._ledger.mark_synced(EntityType.LINK, link_id)
            return
        entity = _ledger_target(operation)
        if entity is None:
            return
        entity_type, entity_id = entity
        await self._ledger.mark_synced(entity_type, entity_id, remote_id=remote_id)

    async def _record_failure(self, operation: SyncOperation) -> None:
        entity = _ledger_target(operation)
        if entity is None:
            return
        entity_type, entity_id = entity
        await self._ledger.mark_dirty(entity_type, entity_id)


def _ledger_target(operation: SyncOperation) -> tuple[EntityType, int] | None:
    """Row whose ledger columns follow the outcome; deletes have none."""
    if isinstance(operation, LinkCreate | LinkUpdate | LinkMove):
        if operation.link.id is None:
            return None
        return EntityType.LINK, operation.link.id
    if isinstance(operation, CollectionCreate | CollectionUpdate):
        if operation.collection.id is None:
            return None
        return EntityType.COLLECTION, operation.collection.id
    return None


class SyncStrategySelector:
    """Routes each mutation to the strategy chosen in the persisted settings."""

    def __init__(
        self,
        *,
        settings: SyncSettings,
        immediate: ImmediateSyncStrategy,
        manual: ManualSyncStrategy | None = None,
    ) -> None:
        self._settings = settings
        self._immediate = immediate
        self._manual = manual or ManualSyncStrategy()

    async def current_strategy(self) -> SyncStrategy:
        if await self._settings.is_immediate_sync_enabled():
            return self._immediate
        return self._manual

    async def execute(self, operation: SyncOperation) -> SyncResult:
        strategy = await self.current_strategy()
        return await strategy.execute(operation)

    async def describe(self) -> dict[str, Any]:
        strategy = await self.current_strategy()
        return {"strategy": strategy.name, "immediate": strategy is self._immediate}
