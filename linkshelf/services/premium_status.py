"""Premium account check with a 24 hour cache in the settings table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from linkshelf.adapters.kioju.client import KiojuClient
from linkshelf.core.time_utils import parse_timestamp, utc_now
from linkshelf.domain.exceptions.domain_exceptions import (
    AuthenticationError,
    AuthorizationError,
    PremiumRequiredError,
    RemoteSyncError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from linkshelf.sync.protocols import KiojuClientFactory, SyncRepository

logger = logging.getLogger(__name__)

PREMIUM_FLAG_KEY = "premium_status_is_premium"
PREMIUM_CHECKED_AT_KEY = "premium_status_checked_at"
PREMIUM_MESSAGE_KEY = "premium_status_message"

AUTH_HINT = "Please check your API token in Settings"
NO_PREMIUM_ACCESS = "API token does not have premium access"
UNVERIFIED = "Unable to verify premium status. Some features may be limited."
NO_TOKEN = "No API token configured. Please set up your API token in settings."


@dataclass(frozen=True)
class PremiumCheck:
    is_premium: bool
    message: str | None = None
    checked_at: datetime | None = None
    from_cache: bool = False


class PremiumStatusService:
    def __init__(
        self,
        *,
        repository: SyncRepository,
        api_url: str,
        api_key: str,
        client_factory: KiojuClientFactory | None = None,
        cache_hours: int = 24,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self.api_url = api_url
        self.api_key = api_key
        self._client_factory = client_factory or KiojuClient
        self._cache_ttl = timedelta(hours=cache_hours)
        self._clock = clock

    async def check_premium_status(self, *, force_refresh: bool = False) -> PremiumCheck:
        if not self.api_key:
            return PremiumCheck(is_premium=False, message=NO_TOKEN)

        cached = await self._read_cache()
        if not force_refresh and cached is not None and cached.checked_at is not None:
            if self._clock() - cached.checked_at < self._cache_ttl:
                return cached

        try:
            async with self._client_factory(self.api_url, self.api_key) as client:
                status = await client.check_premium_status()
        except AuthenticationError:
            logger.warning("premium_check_auth_failed")
            return PremiumCheck(is_premium=False, message=AUTH_HINT)
        except AuthorizationError:
            return PremiumCheck(is_premium=False, message=NO_PREMIUM_ACCESS)
        except RemoteSyncError as exc:
            logger.warning("premium_check_failed", extra={"error": str(exc)})
            if cached is not None:
                return PremiumCheck(
                    is_premium=cached.is_premium,
                    message=UNVERIFIED,
                    checked_at=cached.checked_at,
                    from_cache=True,
                )
            return PremiumCheck(is_premium=False, message=UNVERIFIED)

        checked_at = self._clock()
        await self._repository.async_set_setting(
            PREMIUM_FLAG_KEY, "true" if status.is_premium else "false"
        )
        await self._repository.async_set_setting(PREMIUM_CHECKED_AT_KEY, checked_at.isoformat())
        await self._repository.async_set_setting(PREMIUM_MESSAGE_KEY, status.message)
        logger.info("premium_status_refreshed", extra={"is_premium": status.is_premium})
        return PremiumCheck(
            is_premium=status.is_premium, message=status.message, checked_at=checked_at
        )

    async def require_premium(self) -> None:
        """Raise ``PremiumRequiredError`` unless the account is premium."""
        status = await self.check_premium_status()
        if not status.is_premium:
            raise PremiumRequiredError(
                "Collection management requires a premium account",
                details={"reason": status.message},
            )

    async def clear_cache(self) -> None:
        for key in (PREMIUM_FLAG_KEY, PREMIUM_CHECKED_AT_KEY, PREMIUM_MESSAGE_KEY):
            await self._repository.async_set_setting(key, None)

    async def _read_cache(self) -> PremiumCheck | None:
        flag = await self._repository.async_get_setting(PREMIUM_FLAG_KEY)
        if flag is None:
            return None
        raw_checked_at = await self._repository.async_get_setting(PREMIUM_CHECKED_AT_KEY)
        checked_at = parse_timestamp(raw_checked_at)
        message = await self._repository.async_get_setting(PREMIUM_MESSAGE_KEY)
        return PremiumCheck(
            is_premium=flag == "true", message=message, checked_at=checked_at, from_cache=True
        )
