"""Tests for merging remote collections and links into the local store."""

from __future__ import annotations

import unittest
from datetime import UTC, datetime

from linkshelf.adapters.kioju.models import RemoteCollection, RemoteLink
from linkshelf.domain.exceptions.domain_exceptions import NetworkError
from linkshelf.security.rate_limiter import RemoteRateLimiter
from linkshelf.sync.pull import PullReconciler
from tests.fakes import FakeKiojuClient, InMemorySyncRepository

NOW = datetime(2025, 5, 1, 12, 0, tzinfo=UTC)
CREATED = datetime(2024, 1, 1, tzinfo=UTC)


class TestPullReconciler(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.repo = InMemorySyncRepository()
        self.client = FakeKiojuClient()
        self.limiter = RemoteRateLimiter()
        self.pull = PullReconciler(rate_limiter=self.limiter, clock=lambda: NOW)

    async def _run(self, *, force_overwrite: bool = False):
        return await self.pull.sync_down(
            self.client, self.repo, force_overwrite=force_overwrite, correlation_id="test"
        )

    async def test_skipped_while_rate_limited(self):
        self.limiter.record_rate_limit({"Retry-After": "30"})

        result = await self._run()

        assert result.skipped is True
        assert result.success is False
        assert result.message.startswith("Rate limited.")
        assert self.client.calls == []

    async def test_creates_collections_and_links_clean(self):
        self.client.remote_collections = [
            RemoteCollection(id="1", name="Work", tags=[{"slug": "job"}], visibility="PUBLIC")
        ]
        self.client.collection_links = {
            "1": [RemoteLink(id="10", url="https://a.example", tags="x,y", created_at=CREATED)]
        }
        self.client.uncategorized = [RemoteLink(id="11", link="https://b.example")]

        result = await self._run()

        assert result.success
        assert result.collections_updated == 1
        assert result.links_created == 2
        work = await self.repo.async_get_collection_by_name("Work")
        assert work.remote_id == "1"
        assert work.tags == ["job"]
        assert work.visibility.value == "public"
        assert work.is_dirty is False
        assert work.link_count == 1

        a = await self.repo.async_get_link_by_url("https://a.example")
        assert a.collection == "Work"
        assert a.tags == ["x", "y"]
        assert a.created_at == CREATED
        assert a.is_dirty is False
        assert a.last_synced_at == NOW
        b = await self.repo.async_get_link_by_url("https://b.example")
        assert b.collection is None

    async def test_existing_link_matched_by_normalized_url(self):
        local = self.repo.add_link("https://www.example.com/a/", title="Mine", created_at=CREATED)
        self.client.uncategorized = [
            RemoteLink(id="5", url="https://example.com/a", title="Theirs", description="d")
        ]

        result = await self._run()

        assert result.links_updated == 1
        merged = self.repo.links[local.id]
        assert merged.title == "Theirs"
        assert merged.notes == "d"
        assert merged.remote_id == "5"
        assert merged.created_at == CREATED
        assert merged.is_dirty is False

    async def test_remote_rename_follows_remote_id(self):
        self.repo.add_collection("Old", remote_id="1", is_dirty=False, last_synced_at=CREATED)
        link = self.repo.add_link(
            "https://a.example", collection="Old", is_dirty=False, last_synced_at=CREATED
        )
        self.client.remote_collections = [RemoteCollection(id="1", name="New")]
        self.client.collection_links = {"1": [RemoteLink(id="9", url="https://a.example")]}

        await self._run()

        assert [c.name for c in await self.repo.async_list_collections()] == ["New"]
        assert self.repo.links[link.id].collection == "New"

    async def test_missing_collections_removed_unless_unsynced(self):
        self.repo.add_collection("Gone", remote_id="2")
        self.repo.add_collection("LocalOnly")

        result = await self._run()

        assert result.collections_removed == 1
        assert [c.name for c in await self.repo.async_list_collections()] == ["LocalOnly"]

    async def test_force_overwrite_clears_collections(self):
        self.repo.add_collection("LocalOnly")
        self.client.remote_collections = [RemoteCollection(id="1", name="Remote")]

        result = await self._run(force_overwrite=True)

        assert result.collections_removed == 1
        assert [c.name for c in await self.repo.async_list_collections()] == ["Remote"]

    async def test_invalid_remote_collections_reported(self):
        self.client.remote_collections = [
            RemoteCollection(id=None, name="NoId"),
            RemoteCollection(id="3", name="  "),
        ]

        result = await self._run()

        assert not result.success
        assert "Collection has no ID, skipping: NoId" in result.errors
        assert "Collection has no name, skipping ID: 3" in result.errors

    async def test_remote_rename_frees_name_for_new_collection(self):
        self.repo.add_collection("Work", remote_id="OTHER")
        self.client.remote_collections = [
            RemoteCollection(id="OTHER", name="Elsewhere"),
            RemoteCollection(id="1", name="Work"),
        ]

        result = await self._run()
        # "OTHER" was renamed first, so "Work" is free by the time id 1 merges.
        assert result.success
        names = sorted(c.name for c in await self.repo.async_list_collections())
        assert names == ["Elsewhere", "Work"]

    async def test_name_held_by_other_remote_id_is_an_error(self):
        self.repo.add_collection("Work", remote_id="OTHER")
        self.client.remote_collections = [
            RemoteCollection(id="1", name="Work"),
            RemoteCollection(id="OTHER", name="Work 2"),
        ]

        result = await self._run()

        assert not result.success
        assert result.errors == ["Collection 'Work' exists locally with a different remote ID"]

    async def test_collection_fetch_failure_aborts(self):
        self.client.errors["list_collections"] = NetworkError("down")

        result = await self._run()

        assert not result.success
        assert result.errors == ["Failed to fetch collections: down"]
        assert result.retryable_errors == result.errors

    async def test_per_collection_link_failure_is_isolated(self):
        self.client.remote_collections = [
            RemoteCollection(id="1", name="A"),
            RemoteCollection(id="2", name="B"),
        ]
        self.client.errors["get_collection_links"] = [NetworkError("boom")]
        self.client.collection_links = {"2": [RemoteLink(id="20", url="https://b.example")]}

        result = await self._run()

        assert not result.success
        assert result.errors == ["Failed to fetch links for collection 'A': boom"]
        assert result.links_created == 1

    async def test_repeated_pull_keeps_created_at(self):
        self.client.uncategorized = [
            RemoteLink(id="10", url="https://a.example", title="A", created_at=CREATED)
        ]
        first = await self._run()
        assert first.links_created == 1

        self.client.uncategorized = [
            RemoteLink(id="10", url="https://a.example", title="A2", created_at=NOW)
        ]
        second = await self._run()

        assert second.success
        assert second.links_created == 0
        assert second.links_updated == 1
        (link,) = await self.repo.async_list_links()
        assert link.created_at == CREATED
        assert link.title == "A2"
        assert link.is_dirty is False


if __name__ == "__main__":
    unittest.main()
