"""Tests for local-first link mutations."""

from __future__ import annotations

import unittest

from linkshelf.domain.exceptions.domain_exceptions import (
    DuplicateResourceError,
    NetworkError,
    ResourceNotFoundError,
    ValidationError,
)
from linkshelf.services.link_service import LinkService
from linkshelf.sync.ledger import DirtyStateLedger
from linkshelf.sync.models import SyncResultType
from linkshelf.sync.retry import RetryExecutor, RetryPolicy
from linkshelf.sync.settings import SyncSettings
from linkshelf.sync.strategy import ImmediateSyncStrategy, SyncStrategySelector
from tests.fakes import FakeKiojuClient, InMemorySyncRepository, no_sleep


class LinkServiceTestCase(unittest.IsolatedAsyncioTestCase):
    immediate = False

    async def asyncSetUp(self):
        self.repo = InMemorySyncRepository()
        self.client = FakeKiojuClient()
        self.settings = SyncSettings(self.repo)
        await self.settings.set_immediate_sync_enabled(self.immediate)
        strategy = ImmediateSyncStrategy(
            repository=self.repo,
            ledger=DirtyStateLedger(self.repo),
            api_url="https://kioju.test/api.php",
            api_key="secret",
            client_factory=self.client.factory,
            retry=RetryExecutor(RetryPolicy(max_retries=0), sleep=no_sleep),
        )
        self.service = LinkService(
            repository=self.repo,
            selector=SyncStrategySelector(settings=self.settings, immediate=strategy),
        )


# ---------------------------------------------------------------------------
# Manual mode
# ---------------------------------------------------------------------------


class TestLinkServiceManual(LinkServiceTestCase):
    async def test_create_link_is_stored_dirty(self):
        outcome = await self.service.create_link(
            " https://example.com/a ", title=" A ", tags=["x", " y", ""]
        )

        link = outcome.entity
        assert link.url == "https://example.com/a"
        assert link.title == "A"
        assert link.tags == ["x", "y"]
        assert link.is_dirty is True
        assert link.remote_id is None
        assert outcome.sync.result_type is SyncResultType.MANUAL_QUEUED
        assert outcome.message == "Link added locally. Use sync to upload changes."
        assert self.client.calls == []

    async def test_validation_happens_before_any_write(self):
        with self.assertRaises(ValidationError):
            await self.service.create_link("")
        with self.assertRaises(ValidationError):
            await self.service.create_link("ftp://example.com")
        assert self.repo.links == {}

    async def test_duplicate_by_normalized_url(self):
        self.repo.add_link("https://www.example.com/a/")
        with self.assertRaises(DuplicateResourceError) as ctx:
            await self.service.create_link("https://EXAMPLE.com/a")
        assert ctx.exception.message == "A link with this URL already exists"

    async def test_unknown_collection(self):
        with self.assertRaises(ResourceNotFoundError):
            await self.service.create_link("https://example.com", collection="Nope")

    async def test_create_in_collection_refreshes_count(self):
        collection = self.repo.add_collection("Work")
        await self.service.create_link("https://example.com", collection="Work")
        assert self.repo.collections[collection.id].link_count == 1

    async def test_update_link(self):
        link = self.repo.add_link("https://a.example", is_dirty=False)

        outcome = await self.service.update_link(link.id, title="New", is_private=True)

        assert outcome.entity.title == "New"
        assert outcome.entity.is_private is True
        assert outcome.entity.is_dirty is True

    async def test_update_url_to_existing_is_rejected(self):
        self.repo.add_link("https://a.example")
        other = self.repo.add_link("https://b.example")
        with self.assertRaises(DuplicateResourceError):
            await self.service.update_link(other.id, url="https://www.a.example")

    async def test_update_missing_link(self):
        with self.assertRaises(ResourceNotFoundError):
            await self.service.update_link(999, title="x")

    async def test_move_link_updates_counts(self):
        work = self.repo.add_collection("Work")
        link = self.repo.add_link("https://a.example")

        outcome = await self.service.move_link(link.id, "Work")

        assert outcome.entity.collection == "Work"
        assert self.repo.collections[work.id].link_count == 1

        await self.service.move_link(link.id, None)
        assert self.repo.links[link.id].collection is None
        assert self.repo.collections[work.id].link_count == 0

    async def test_delete_link(self):
        link = self.repo.add_link("https://a.example")
        outcome = await self.service.delete_link(link.id)
        assert outcome.entity.id == link.id
        assert await self.service.get_link(link.id) is None

    async def test_bulk_move_reports_missing_ids(self):
        self.repo.add_collection("Work")
        link = self.repo.add_link("https://a.example")

        outcome = await self.service.move_links_bulk([link.id, 404], "Work")

        assert outcome.processed_ids == [link.id]
        assert outcome.message == "Bulk move completed with 1 errors: Link 404 not found"
        assert not outcome.success

    async def test_bulk_with_nothing_processable(self):
        outcome = await self.service.delete_links_bulk([1, 2])
        assert outcome.sync is None
        assert outcome.message.startswith("No links could be processed: ")

    async def test_list_links(self):
        self.repo.add_link("https://a.example", collection="Work")
        self.repo.add_link("https://b.example")
        assert len(await self.service.list_links()) == 2
        assert len(await self.service.list_links(collection="Work")) == 1
        assert len(await self.service.list_links(uncategorized=True)) == 1


# ---------------------------------------------------------------------------
# Immediate mode
# ---------------------------------------------------------------------------


class TestLinkServiceImmediate(LinkServiceTestCase):
    immediate = True

    async def test_create_syncs_and_returns_remote_id(self):
        outcome = await self.service.create_link("https://example.com")

        assert outcome.sync.result_type is SyncResultType.IMMEDIATE_SUCCESS
        assert outcome.entity.remote_id is not None
        assert outcome.entity.is_dirty is False
        assert outcome.message == "Link added and synced successfully"

    async def test_remote_failure_keeps_local_write(self):
        self.client.errors["add_link"] = NetworkError("down")

        outcome = await self.service.create_link("https://example.com")

        assert outcome.sync.result_type is SyncResultType.IMMEDIATE_FAILURE
        assert outcome.entity.is_dirty is True
        assert outcome.message == "Link added locally, but server sync failed: Sync failed: down"
        assert len(self.repo.links) == 1

    async def test_update_of_never_uploaded_link_creates_it(self):
        link = self.repo.add_link("https://a.example")

        outcome = await self.service.update_link(link.id, title="T")

        assert outcome.sync.success
        assert self.client.called("add_link")
        assert self.client.called("update_link") == []

    async def test_bulk_delete(self):
        a = self.repo.add_link("https://a.example", remote_id="L1")
        b = self.repo.add_link("https://b.example")

        outcome = await self.service.delete_links_bulk([a.id, b.id])

        assert outcome.success
        assert outcome.message == "Bulk delete of 2 links completed and synced successfully"
        assert self.client.called("delete_link") == [(("L1",), {})]


if __name__ == "__main__":
    unittest.main()
