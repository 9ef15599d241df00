"""Cooldown tracking for the remote API's 429 responses."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from linkshelf.domain.exceptions.domain_exceptions import RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for remote rate limit cooldowns."""

    default_cooldown_seconds: int = 60  # Used when the 429 carries no hint
    max_cooldown_seconds: int = 300  # Upper bound on any cooldown


@dataclass(frozen=True)
class RateLimitStatus:
    is_rate_limited: bool
    can_make_request: bool
    remaining_seconds: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_rate_limited": self.is_rate_limited,
            "can_make_request": self.can_make_request,
            "remaining_seconds": self.remaining_seconds,
            "message": self.message,
        }


class RemoteRateLimiter:
    """Process-wide cooldown shared by every remote call.

    A 429 response starts a cooldown; until it expires every request is
    refused locally with ``RateLimitError`` and pulls are skipped.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._limited_until: float | None = None

    def status(self) -> RateLimitStatus:
        if self._limited_until is None:
            return RateLimitStatus(False, True, 0, "No rate limits active")

        remaining = self._limited_until - self._clock()
        if remaining > 0:
            seconds = math.ceil(remaining)
            return RateLimitStatus(
                True, False, seconds, f"Rate limited. {seconds} seconds remaining."
            )
        return RateLimitStatus(False, True, 0, "Rate limit cooldown has expired")

    def ensure_can_request(self) -> None:
        """Raise ``RateLimitError`` while a cooldown is active.

        Clears an expired cooldown as a side effect.
        """
        if self._limited_until is None:
            return
        remaining = self._limited_until - self._clock()
        if remaining > 0:
            seconds = math.ceil(remaining)
            raise RateLimitError(
                f"Rate limited. Please wait {seconds} seconds.", retry_after=seconds
            )
        self._limited_until = None

    def record_rate_limit(self, headers: Mapping[str, str] | None = None) -> int:
        """Start a cooldown from a 429 response and return its length in seconds.

        ``Retry-After`` (seconds) wins, then ``X-RateLimit-Reset`` (epoch),
        then the configured default. The result is capped.
        """
        seconds = self._cooldown_from_headers(headers or {})
        seconds = max(1, min(seconds, self._config.max_cooldown_seconds))
        self._limited_until = self._clock() + seconds
        logger.warning("remote_rate_limited", extra={"cooldown_seconds": seconds})
        return seconds

    def reset(self) -> None:
        self._limited_until = None

    def _cooldown_from_headers(self, headers: Mapping[str, str]) -> int:
        lowered = {str(key).lower(): value for key, value in headers.items()}

        retry_after = lowered.get("retry-after")
        if retry_after:
            try:
                return math.ceil(float(retry_after))
            except ValueError:
                logger.debug("retry_after_unparseable", extra={"value": retry_after})

        reset_at = lowered.get("x-ratelimit-reset")
        if reset_at:
            try:
                return math.ceil(float(reset_at) - self._clock())
            except ValueError:
                logger.debug("ratelimit_reset_unparseable", extra={"value": reset_at})

        return self._config.default_cooldown_seconds
