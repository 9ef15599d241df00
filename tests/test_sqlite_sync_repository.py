"""Integration tests for the SQLite store adapter (temporary database file)."""

from __future__ import annotations

import os
import tempfile
import unittest
from datetime import UTC, datetime

from linkshelf.db.session import DatabaseSessionManager
from linkshelf.domain.models import Collection, DeleteMode, EntityType, Link
from linkshelf.infrastructure.persistence.sqlite.repositories.sync_repository import (
    SqliteSyncRepositoryAdapter,
)

SYNCED_AT = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)


class SqliteRepositoryTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db = DatabaseSessionManager(path=os.path.join(self._tmpdir.name, "links.db"))
        self.db.migrate()
        self.repo = SqliteSyncRepositoryAdapter(self.db)

    def tearDown(self):
        self.db.close()
        self._tmpdir.cleanup()


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


class TestLinks(SqliteRepositoryTestCase):
    async def test_insert_and_read_back(self):
        link = await self.repo.async_insert_link(
            Link(url="https://Example.com/a/", title="A", tags=["x", "y"], is_private=True)
        )
        assert link.id is not None

        fetched = await self.repo.async_get_link(link.id)
        assert fetched is not None
        assert fetched.tags == ["x", "y"]
        assert fetched.is_private is True
        assert fetched.is_dirty is True
        assert fetched.last_synced_at is None

    async def test_find_by_normalized_url(self):
        await self.repo.async_insert_link(Link(url="https://www.example.com/a/"))
        found = await self.repo.async_find_link_by_normalized_url("HTTPS://example.com/a")
        assert found is not None
        assert found.url == "https://www.example.com/a/"
        assert await self.repo.async_get_link_by_url("https://example.com/a") is None

    async def test_list_in_collection_and_uncategorized(self):
        await self.repo.async_insert_link(Link(url="https://a.example", collection="Work"))
        await self.repo.async_insert_link(Link(url="https://b.example"))

        work = await self.repo.async_list_links_in_collection("Work")
        loose = await self.repo.async_list_links_in_collection(None)
        assert [link.url for link in work] == ["https://a.example"]
        assert [link.url for link in loose] == ["https://b.example"]

    async def test_update_and_delete(self):
        link = await self.repo.async_insert_link(Link(url="https://a.example"))
        link.title = "Renamed"
        updated = await self.repo.async_update_link(link)
        assert updated.title == "Renamed"

        assert await self.repo.async_delete_link(link.id) is True
        assert await self.repo.async_get_link(link.id) is None
        assert await self.repo.async_delete_link(link.id) is False


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class TestCollections(SqliteRepositoryTestCase):
    async def test_tags_round_trip_through_join_table(self):
        collection = await self.repo.async_insert_collection(
            Collection(name="Reading", tags=["books", "books", " long "])
        )
        assert collection.tags == ["books", "long"]

        await self.repo.async_set_collection_tags(collection.id, ["new"])
        assert await self.repo.async_get_collection_tags(collection.id) == ["new"]

    async def test_tags_differing_only_in_case_collapse(self):
        collection = await self.repo.async_insert_collection(
            Collection(
                name="Reading",
                tags=["Python", "python", "Machine Learning", "machine-learning"],
            )
        )
        assert collection.tags == ["Python", "Machine Learning"]

        await self.repo.async_set_collection_tags(collection.id, ["Dev Ops", "dev-ops", "web"])
        assert await self.repo.async_get_collection_tags(collection.id) == ["Dev Ops", "web"]

    async def test_rename_cascades_to_links_and_marks_them_dirty(self):
        collection = await self.repo.async_insert_collection(Collection(name="Old"))
        link = await self.repo.async_insert_link(
            Link(url="https://a.example", collection="Old", is_dirty=False)
        )

        collection.name = "New"
        await self.repo.async_update_collection(collection, previous_name="Old")

        moved = await self.repo.async_get_link(link.id)
        assert moved.collection == "New"
        assert moved.is_dirty is True

    async def test_remote_rename_keeps_links_clean(self):
        collection = await self.repo.async_insert_collection(Collection(name="Old"))
        link = await self.repo.async_insert_link(
            Link(url="https://a.example", collection="Old", is_dirty=False)
        )

        collection.name = "New"
        await self.repo.async_update_collection(
            collection, previous_name="Old", mark_links_dirty=False
        )

        moved = await self.repo.async_get_link(link.id)
        assert moved.collection == "New"
        assert moved.is_dirty is False

    async def test_delete_move_links(self):
        collection = await self.repo.async_insert_collection(Collection(name="Work", tags=["t"]))
        link = await self.repo.async_insert_link(Link(url="https://a.example", collection="Work"))

        affected = await self.repo.async_delete_collection(collection.id, DeleteMode.MOVE_LINKS)
        assert affected == 1
        assert (await self.repo.async_get_link(link.id)).collection is None
        assert await self.repo.async_get_collection(collection.id) is None
        assert await self.repo.async_count_orphaned_collection_tags() == 0

    async def test_delete_links_mode(self):
        collection = await self.repo.async_insert_collection(Collection(name="Work"))
        link = await self.repo.async_insert_link(Link(url="https://a.example", collection="Work"))

        await self.repo.async_delete_collection(collection.id, DeleteMode.DELETE_LINKS)
        assert await self.repo.async_get_link(link.id) is None

    async def test_link_counts(self):
        await self.repo.async_insert_collection(Collection(name="Work"))
        await self.repo.async_insert_collection(Collection(name="Empty"))
        await self.repo.async_insert_link(Link(url="https://a.example", collection="Work"))
        await self.repo.async_insert_link(Link(url="https://b.example", collection="Work"))

        await self.repo.async_update_link_counts()
        counts = {c.name: c.link_count for c in await self.repo.async_list_collections()}
        assert counts == {"Empty": 0, "Work": 2}

    async def test_remove_collections_missing_remotely(self):
        await self.repo.async_insert_collection(Collection(name="Kept", remote_id="1"))
        await self.repo.async_insert_collection(Collection(name="Gone", remote_id="2"))
        await self.repo.async_insert_collection(Collection(name="Local"))
        await self.repo.async_insert_link(Link(url="https://a.example", collection="Gone"))

        removed = await self.repo.async_remove_collections_missing_remotely({"1"})
        assert removed == ["Gone"]
        names = [c.name for c in await self.repo.async_list_collections()]
        assert names == ["Kept", "Local"]
        orphan = await self.repo.async_get_link_by_url("https://a.example")
        assert orphan.collection is None

    async def test_clear_collections(self):
        await self.repo.async_insert_collection(Collection(name="A", tags=["x"]))
        await self.repo.async_insert_link(Link(url="https://a.example", collection="A"))

        assert await self.repo.async_clear_collections() == 1
        assert await self.repo.async_list_collections() == []
        assert (await self.repo.async_get_link_by_url("https://a.example")).collection is None


# ---------------------------------------------------------------------------
# Ledger columns and settings
# ---------------------------------------------------------------------------


class TestLedgerAndSettings(SqliteRepositoryTestCase):
    async def test_mark_synced_then_dirty(self):
        link = await self.repo.async_insert_link(Link(url="https://a.example"))

        await self.repo.async_mark_synced(
            EntityType.LINK, link.id, synced_at=SYNCED_AT, remote_id="L7"
        )
        synced = await self.repo.async_get_link(link.id)
        assert synced.is_dirty is False
        assert synced.remote_id == "L7"
        assert synced.last_synced_at == SYNCED_AT
        assert await self.repo.async_list_pending_links() == []

        await self.repo.async_mark_dirty(EntityType.LINK, link.id)
        pending = await self.repo.async_list_pending_links()
        assert [p.id for p in pending] == [link.id]

    async def test_pending_collections_include_never_synced(self):
        await self.repo.async_insert_collection(Collection(name="Fresh", is_dirty=False))
        pending = await self.repo.async_list_pending_collections()
        assert [c.name for c in pending] == ["Fresh"]

    async def test_settings_upsert(self):
        assert await self.repo.async_get_setting("immediate_sync_enabled") is None
        await self.repo.async_set_setting("immediate_sync_enabled", "true")
        await self.repo.async_set_setting("immediate_sync_enabled", "false")
        assert await self.repo.async_get_setting("immediate_sync_enabled") == "false"


class TestDatabaseSessionManager(unittest.TestCase):
    def test_in_memory_path_is_rejected(self):
        with self.assertRaises(ValueError):
            DatabaseSessionManager(path=":memory:")


if __name__ == "__main__":
    unittest.main()
