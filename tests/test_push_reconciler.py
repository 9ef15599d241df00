"""Tests for uploading pending collections and links."""

from __future__ import annotations

import unittest
from datetime import UTC, datetime

from linkshelf.adapters.kioju.models import RemoteCollection, RemoteLink
from linkshelf.domain.exceptions.domain_exceptions import ApiError, NetworkError, RateLimitError
from linkshelf.security.rate_limiter import RemoteRateLimiter
from linkshelf.sync.conflicts import ConflictDetector
from linkshelf.sync.pull import PullReconciler
from linkshelf.sync.push import LINK_CONFLICT_WARNING, PushReconciler
from linkshelf.sync.retry import RetryExecutor, RetryPolicy
from tests.fakes import FakeKiojuClient, InMemorySyncRepository, conflict_error, no_sleep

NOW = datetime(2025, 5, 1, 12, 0, tzinfo=UTC)


class PushReconcilerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.repo = InMemorySyncRepository()
        self.client = FakeKiojuClient()
        self.limiter = RemoteRateLimiter()
        self.push = PushReconciler(
            retry=RetryExecutor(RetryPolicy(max_retries=1), sleep=no_sleep),
            rate_limiter=self.limiter,
            clock=lambda: NOW,
        )

    async def _run(self):
        return await self.push.sync_up(self.client, self.repo, correlation_id="test")


class TestPushReconciler(PushReconcilerTestCase):
    async def test_nothing_pending(self):
        result = await self._run()
        assert result.success
        assert result.collections_synced == 0
        assert result.links_synced == 0
        assert self.client.calls == []

    async def test_collections_pushed_before_links(self):
        self.repo.add_link("https://a.example", collection="Work")
        collection = self.repo.add_collection("Work", tags=["x"])

        result = await self._run()

        assert result.success
        assert result.collections_synced == 1
        assert result.links_synced == 1
        methods = [name for name, _, _ in self.client.calls]
        assert methods == ["create_collection", "add_link", "assign_link_to_collection"]
        stored = self.repo.collections[collection.id]
        assert stored.remote_id is not None
        assert stored.is_dirty is False
        assert stored.last_synced_at == NOW

    async def test_existing_entities_are_updated(self):
        self.repo.add_collection("Work", remote_id="C1")
        link = self.repo.add_link("https://a.example", remote_id="L1", collection="Work")

        result = await self._run()

        assert result.success
        assert self.client.called("update_collection")[0][0] == ("C1",)
        assert self.client.called("update_link")[0][0] == ("L1",)
        assert self.client.called("assign_link_to_collection") == [(("L1", "C1"), {})]
        assert self.repo.links[link.id].is_dirty is False

    async def test_collection_conflict_links_existing_remote(self):
        collection = self.repo.add_collection("Work")
        self.client.errors["create_collection"] = conflict_error()
        self.client.remote_collections = [RemoteCollection(id="77", name="Work")]

        result = await self._run()

        assert result.success
        assert self.repo.collections[collection.id].remote_id == "77"

    async def test_link_in_unsynced_collection_is_skipped(self):
        self.repo.add_collection("Work", remote_id=None)
        self.client.errors["create_collection"] = ApiError("HTTP 400: Bad Request", status_code=400)
        link = self.repo.add_link("https://a.example", collection="Work")

        result = await self._run()

        assert not result.success
        assert result.items_failed == 2
        assert any("is not synced" in error for error in result.errors)
        assert self.client.called("add_link") == []
        assert self.repo.links[link.id].is_dirty is True

    async def test_link_conflict_is_a_warning(self):
        link = self.repo.add_link("https://a.example")
        self.client.errors["add_link"] = conflict_error()

        result = await self._run()

        assert not result.success
        assert result.errors == [f"{LINK_CONFLICT_WARNING}: https://a.example"]
        assert result.permanent_errors == result.errors
        assert self.repo.links[link.id].is_dirty is True

    async def test_assign_conflict_on_update_is_ignored(self):
        self.repo.add_link("https://a.example", remote_id="L1")
        self.client.errors["assign_link_to_collection"] = conflict_error()

        result = await self._run()
        assert result.success

    async def test_failures_are_isolated_and_classified(self):
        self.repo.add_link("https://a.example")
        self.repo.add_link("https://b.example")
        self.client.errors["add_link"] = [NetworkError("down"), NetworkError("down")]

        result = await self._run()

        assert result.links_synced == 1
        assert result.items_failed == 1
        assert len(result.retryable_errors) == 1
        assert result.permanent_errors == []

    async def test_second_run_writes_nothing(self):
        self.repo.add_collection("Work", tags=["x"])
        self.repo.add_link("https://a.example", collection="Work", notes="n")
        self.repo.add_link("https://b.example")

        first = await self._run()
        assert first.success
        self.client.calls.clear()

        second = await self._run()

        assert second.success
        assert second.collections_synced == 0
        assert second.links_synced == 0
        assert self.client.calls == []

    async def test_partial_failure_dirty_state_per_row(self):
        links = [self.repo.add_link(f"https://{name}.example") for name in "abcd"]
        failing = {"https://b.example", "https://d.example"}
        original = self.client.add_link

        async def flaky_add_link(**kwargs):
            if kwargs["url"] in failing:
                raise ApiError("HTTP 400: Bad Request", status_code=400)
            return await original(**kwargs)

        self.client.add_link = flaky_add_link

        result = await self._run()

        assert result.links_synced == 2
        assert result.items_failed == 2
        for link in links:
            stored = self.repo.links[link.id]
            if link.url in failing:
                assert stored.is_dirty is True, link.url
                assert stored.remote_id is None
            else:
                assert stored.is_dirty is False, link.url
                assert stored.remote_id is not None
                assert stored.last_synced_at == NOW

    async def test_unsynced_changes_cleared_by_push(self):
        detector = ConflictDetector(self.repo)
        self.repo.add_link("https://a.example", remote_id="L1", is_dirty=True, last_synced_at=NOW)

        assert await detector.has_unsynced_changes() is True

        result = await self._run()

        assert result.success
        assert await detector.has_unsynced_changes() is False


# ---------------------------------------------------------------------------
# Rate-limit cooldown
# ---------------------------------------------------------------------------


class TestPushCooldown(PushReconcilerTestCase):
    async def test_active_cooldown_skips_all_items(self):
        collection = self.repo.add_collection("Work")
        link = self.repo.add_link("https://a.example")
        self.limiter.record_rate_limit({"Retry-After": "60"})

        result = await self._run()

        assert not result.success
        assert self.client.calls == []
        assert result.items_skipped == 2
        assert result.items_failed == 0
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Sync up paused: Rate limited.")
        assert result.retryable_errors == result.errors
        assert self.repo.collections[collection.id].is_dirty is True
        assert self.repo.links[link.id].is_dirty is True

    async def test_rate_limit_mid_run_pauses_remaining_items(self):
        self.repo.add_link("https://a.example")
        self.repo.add_link("https://b.example")

        async def rate_limited_add_link(**kwargs):
            self.client.calls.append(("add_link", (), kwargs))
            self.limiter.record_rate_limit({"Retry-After": "60"})
            raise RateLimitError("Rate limited", retry_after=60)

        self.client.add_link = rate_limited_add_link

        result = await self._run()

        assert len(self.client.called("add_link")) == 1
        assert result.items_failed == 1
        assert result.items_skipped == 1
        assert all(link.is_dirty for link in self.repo.links.values())


# ---------------------------------------------------------------------------
# Notes on new links
# ---------------------------------------------------------------------------


class TestPushNotes(PushReconcilerTestCase):
    async def test_notes_sent_after_create(self):
        link = self.repo.add_link("https://a.example", notes="read later")

        result = await self._run()

        assert result.success
        assert result.links_synced == 1
        remote_id = self.repo.links[link.id].remote_id
        assert self.client.called("update_link") == [
            ((remote_id,), {"description": "read later"})
        ]
        assert self.repo.links[link.id].is_dirty is False

    async def test_no_update_without_notes(self):
        self.repo.add_link("https://a.example")
        await self._run()
        assert self.client.called("update_link") == []

    async def test_notes_failure_keeps_link_dirty_with_remote_id(self):
        link = self.repo.add_link("https://a.example", notes="read later")
        self.client.errors["update_link"] = NetworkError("down")

        result = await self._run()

        assert not result.success
        assert result.items_failed == 1
        assert result.links_synced == 0
        stored = self.repo.links[link.id]
        assert stored.is_dirty is True
        assert stored.remote_id is not None

        # The retry updates the existing remote link instead of creating another.
        self.client.errors.clear()
        retried = await self._run()
        assert retried.success
        assert len(self.client.called("add_link")) == 1
        assert self.repo.links[link.id].is_dirty is False

    async def test_notes_survive_push_then_pull(self):
        link = self.repo.add_link("https://a.example", title="A", notes="read later")
        await self._run()

        ((_, created),) = self.client.called("add_link")
        ((update_args, update_fields),) = self.client.called("update_link")
        self.client.uncategorized = [
            RemoteLink(
                id=update_args[0],
                url=created["url"],
                title=created["title"],
                description=update_fields["description"],
            )
        ]

        pull = PullReconciler(rate_limiter=self.limiter, clock=lambda: NOW)
        result = await pull.sync_down(
            self.client, self.repo, force_overwrite=False, correlation_id="test"
        )

        assert result.success
        assert self.repo.links[link.id].notes == "read later"


if __name__ == "__main__":
    unittest.main()
