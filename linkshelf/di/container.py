"""Wiring for the sync engine.

Everything that talks to the remote service shares one rate limiter and one
in-progress guard, so an immediate mutation and an explicit sync never run
against the API at the same time.
"""

from __future__ import annotations

from dataclasses import dataclass

from linkshelf.adapters.kioju.client import KiojuClient
from linkshelf.config import AppConfig, load_config
from linkshelf.core.logging_utils import get_logger
from linkshelf.db.session import DatabaseSessionManager
from linkshelf.infrastructure.persistence.sqlite.repositories.sync_repository import (
    SqliteSyncRepositoryAdapter,
)
from linkshelf.security.rate_limiter import RateLimitConfig, RemoteRateLimiter
from linkshelf.services.collection_service import CollectionService
from linkshelf.services.import_service import ImportService
from linkshelf.services.link_service import LinkService
from linkshelf.services.premium_status import PremiumStatusService
from linkshelf.sync.guard import SyncInProgressGuard
from linkshelf.sync.ledger import DirtyStateLedger
from linkshelf.sync.protocols import KiojuClientFactory, SyncRepository
from linkshelf.sync.pull import PullReconciler
from linkshelf.sync.push import PushReconciler
from linkshelf.sync.retry import RetryExecutor, RetryPolicy
from linkshelf.sync.service import SyncService
from linkshelf.sync.settings import SyncSettings
from linkshelf.sync.strategy import ImmediateSyncStrategy, SyncStrategySelector

logger = get_logger(__name__)


@dataclass
class SyncContainer:
    config: AppConfig
    db: DatabaseSessionManager | None
    repository: SyncRepository
    rate_limiter: RemoteRateLimiter
    guard: SyncInProgressGuard
    settings: SyncSettings
    selector: SyncStrategySelector
    sync_service: SyncService
    link_service: LinkService
    collection_service: CollectionService
    import_service: ImportService
    premium: PremiumStatusService

    def close(self) -> None:
        if self.db is not None:
            self.db.close()


def make_client_factory(
    cfg: AppConfig, rate_limiter: RemoteRateLimiter, *, max_retries: int | None = None
) -> KiojuClientFactory:
    """Return a factory building configured clients bound to the shared rate limiter.

    ``max_retries`` overrides the configured transport retries. Writes run
    under ``RetryExecutor`` and use ``max_retries=0`` so attempts do not
    multiply.
    """
    transport_retries = cfg.kioju.max_retries if max_retries is None else max_retries

    def _factory(api_url: str, api_key: str) -> KiojuClient:
        return KiojuClient(
            api_url,
            api_key,
            cfg.kioju.request_timeout,
            max_retries=transport_retries,
            retry_base_delay=cfg.kioju.retry_base_delay,
            retry_max_delay=cfg.kioju.retry_max_delay,
            user_agent=cfg.kioju.user_agent,
            rate_limiter=rate_limiter,
        )

    return _factory


def build_sync_container(
    cfg: AppConfig | None = None,
    *,
    db: DatabaseSessionManager | None = None,
    repository: SyncRepository | None = None,
    client_factory: KiojuClientFactory | None = None,
) -> SyncContainer:
    """Construct the sync engine with its services.

    Args:
        cfg: Application configuration. If None, loads from environment.
        db: Database session manager. If None and no repository is given,
            one is created from config and migrated.
        repository: Store adapter. Defaults to the SQLite adapter over ``db``.
        client_factory: Remote client factory. Defaults to configured
            ``KiojuClient`` instances sharing one rate limiter.
    """
    cfg = cfg or load_config()

    if repository is None:
        if db is None:
            db = DatabaseSessionManager(
                path=cfg.runtime.db_path,
                operation_timeout=cfg.database.operation_timeout,
                max_retries=cfg.database.max_retries,
            )
            db.migrate()
        repository = SqliteSyncRepositoryAdapter(db)

    rate_limiter = RemoteRateLimiter(
        RateLimitConfig(
            default_cooldown_seconds=cfg.sync.rate_limit_default_seconds,
            max_cooldown_seconds=cfg.sync.rate_limit_max_seconds,
        )
    )
    if client_factory is None:
        client_factory = make_client_factory(cfg, rate_limiter)
        write_client_factory = make_client_factory(cfg, rate_limiter, max_retries=0)
    else:
        write_client_factory = client_factory

    api_url = cfg.kioju.api_url
    api_key = cfg.kioju.api_key
    retry = RetryExecutor(RetryPolicy.from_config(cfg.sync))
    guard = SyncInProgressGuard()
    settings = SyncSettings(repository, default_immediate=cfg.sync.immediate_default)

    immediate = ImmediateSyncStrategy(
        repository=repository,
        ledger=DirtyStateLedger(repository),
        api_url=api_url,
        api_key=api_key,
        client_factory=write_client_factory,
        retry=retry,
        guard=guard,
    )
    selector = SyncStrategySelector(settings=settings, immediate=immediate)

    premium = PremiumStatusService(
        repository=repository,
        api_url=api_url,
        api_key=api_key,
        client_factory=client_factory,
        cache_hours=cfg.sync.premium_cache_hours,
    )

    sync_service = SyncService(
        api_url=api_url,
        api_key=api_key,
        repository=repository,
        client_factory=client_factory,
        push_client_factory=write_client_factory,
        rate_limiter=rate_limiter,
        guard=guard,
        push=PushReconciler(retry=retry, rate_limiter=rate_limiter),
        pull=PullReconciler(rate_limiter=rate_limiter),
        settings=settings,
    )

    logger.debug(
        "sync_container_built",
        extra={"has_credentials": cfg.kioju.has_credentials, "db_path": cfg.runtime.db_path},
    )
    return SyncContainer(
        config=cfg,
        db=db,
        repository=repository,
        rate_limiter=rate_limiter,
        guard=guard,
        settings=settings,
        selector=selector,
        sync_service=sync_service,
        link_service=LinkService(repository=repository, selector=selector),
        collection_service=CollectionService(
            repository=repository,
            selector=selector,
            premium=premium,
            require_premium=cfg.sync.require_premium,
        ),
        import_service=ImportService(repository=repository, selector=selector),
        premium=premium,
    )
