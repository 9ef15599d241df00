"""Tests for engine wiring and the sync command line."""

from __future__ import annotations

import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from linkshelf.cli.sync import _prepare_config, main, parse_args
from linkshelf.config import load_config
from linkshelf.adapters.kioju.client import KiojuClient
from linkshelf.di.container import build_sync_container, make_client_factory
from linkshelf.security.rate_limiter import RemoteRateLimiter
from linkshelf.sync.models import SyncResultType
from tests.fakes import FakeKiojuClient, InMemorySyncRepository


def _config(**env: str):
    with patch.dict(os.environ, env, clear=True):
        return load_config()


class TestBuildSyncContainer(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.repo = InMemorySyncRepository()
        self.client = FakeKiojuClient()
        self.container = build_sync_container(
            _config(KIOJU_API_KEY="secret"),
            repository=self.repo,
            client_factory=self.client.factory,
        )

    def tearDown(self):
        self.container.close()

    async def test_services_share_guard_and_rate_limiter(self):
        assert self.container.sync_service.guard is self.container.guard
        status = await self.container.sync_service.get_sync_status()
        assert status.rate_limit == self.container.rate_limiter.status().to_dict()

    async def test_manual_strategy_by_default(self):
        outcome = await self.container.link_service.create_link("https://a.test/")
        assert outcome.sync.result_type is SyncResultType.MANUAL_QUEUED
        assert self.client.calls == []
        assert outcome.entity.is_dirty

    async def test_immediate_strategy_after_toggle(self):
        await self.container.settings.set_immediate_sync_enabled(True)

        outcome = await self.container.link_service.create_link("https://a.test/")

        assert outcome.sync.result_type is SyncResultType.IMMEDIATE_SUCCESS
        assert len(self.client.called("add_link")) == 1
        stored = await self.repo.async_get_link(outcome.entity.id)
        assert stored.remote_id is not None
        assert not stored.is_dirty

    async def test_collection_management_checks_premium(self):
        await self.container.collection_service.create_collection("Reading")
        assert len(self.client.called("check_premium_status")) == 1

    async def test_premium_gate_can_be_disabled(self):
        container = build_sync_container(
            _config(KIOJU_API_KEY="secret", SYNC_REQUIRE_PREMIUM="false"),
            repository=InMemorySyncRepository(),
            client_factory=self.client.factory,
        )
        await container.collection_service.create_collection("Reading")
        assert self.client.called("check_premium_status") == []



class TestClientFactories(unittest.TestCase):
    def test_transport_retries_follow_config_unless_overridden(self):
        cfg = _config(KIOJU_API_KEY="secret", KIOJU_MAX_RETRIES="4")
        limiter = RemoteRateLimiter()

        reads = make_client_factory(cfg, limiter)("https://kioju.test/api.php", "secret")
        writes = make_client_factory(cfg, limiter, max_retries=0)(
            "https://kioju.test/api.php", "secret"
        )

        assert isinstance(reads, KiojuClient)
        assert reads.max_retries == 4
        assert writes.max_retries == 0
        assert reads.rate_limiter is limiter
        assert writes.rate_limiter is limiter

    def test_writes_skip_transport_retries(self):
        cfg = _config(KIOJU_API_KEY="secret", KIOJU_MAX_RETRIES="4")
        container = build_sync_container(cfg, repository=InMemorySyncRepository())
        service = container.sync_service

        push_client = service._push_client_factory(service.api_url, service.api_key)
        pull_client = service._client_factory(service.api_url, service.api_key)
        immediate = container.selector._immediate
        strategy_client = immediate._client_factory(service.api_url, service.api_key)

        assert push_client.max_retries == 0
        assert strategy_client.max_retries == 0
        assert pull_client.max_retries == 4
        assert push_client.rate_limiter is container.rate_limiter


# ---------------------------------------------------------------------------
# command line
# ---------------------------------------------------------------------------


class TestSyncCli(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "shelf.db"

    def tearDown(self):
        self._tmp.cleanup()

    def test_parse_args(self):
        args = parse_args(["--db-path", "x.db", "pull", "--resolution", "push_first"])
        assert args.command == "pull"
        assert args.resolution == "push_first"
        assert args.db_path == Path("x.db")

        args = parse_args(["full", "--resolve-conflicts"])
        assert args.resolve_conflicts is True

    def test_command_is_required(self):
        with contextlib.redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            parse_args([])

    def test_prepare_config_applies_overrides(self):
        args = parse_args(["--db-path", str(self.db_path), "--log-level", "DEBUG", "status"])
        with patch.dict(os.environ, {}, clear=True):
            cfg = _prepare_config(args)
        assert cfg.runtime.db_path == str(self.db_path)
        assert cfg.runtime.log_level == "DEBUG"

    def test_prepare_config_reports_invalid_environment(self):
        args = parse_args(["status"])
        with patch.dict(os.environ, {"LOG_LEVEL": "loud"}, clear=True):
            with self.assertRaises(SystemExit):
                _prepare_config(args)

    def test_status_prints_counts(self):
        out = io.StringIO()
        with patch.dict(os.environ, {}, clear=True), contextlib.redirect_stdout(out):
            code = main(["--db-path", str(self.db_path), "status"])

        assert code == 0
        payload = json.loads(out.getvalue())
        assert payload["links"]["total"] == 0
        assert payload["pending"]["total"] == 0
        assert payload["immediate_sync_enabled"] is False

    def test_push_without_token_fails(self):
        out = io.StringIO()
        with patch.dict(os.environ, {}, clear=True), contextlib.redirect_stdout(out):
            code = main(["--db-path", str(self.db_path), "push"])

        assert code == 1
        payload = json.loads(out.getvalue())
        assert payload["success"] is False


if __name__ == "__main__":
    unittest.main()
