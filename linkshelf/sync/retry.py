"""Retry wrapper for single remote sync actions.

Separate from the HTTP client's transport retries: this layer retries a
whole create/update/delete based on the error's semantics.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from linkshelf.domain.exceptions.domain_exceptions import RateLimitError
from linkshelf.utils.retry_utils import compute_backoff_delay, is_transient_error

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from linkshelf.config.sync import SyncConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.1

    @classmethod
    def from_config(cls, config: SyncConfig) -> RetryPolicy:
        return cls(
            max_retries=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            multiplier=config.retry_multiplier,
            jitter=config.retry_jitter,
        )


class RetryExecutor:
    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        func: Callable[[], Awaitable[Any]],
        *,
        operation_name: str,
        correlation_id: str | None = None,
    ) -> tuple[Any | None, bool, bool, Exception | None]:
        """Run ``func`` until it succeeds, fails permanently, or retries run out.

        A ``RateLimitError`` is returned without retrying; every attempt fails
        locally until the cooldown ends.

        Returns:
            ``(value, ok, retryable, error)``
        """
        attempt = 0
        while True:
            try:
                return await func(), True, False, None
            except Exception as exc:
                if isinstance(exc, RateLimitError):
                    return None, False, True, exc
                retryable = is_transient_error(exc)
                if not retryable or attempt >= self.policy.max_retries:
                    if retryable:
                        logger.warning(
                            "sync_retry_exhausted",
                            extra={
                                "correlation_id": correlation_id,
                                "operation": operation_name,
                                "attempts": attempt + 1,
                                "error": str(exc),
                            },
                        )
                    return None, False, retryable, exc

                delay = compute_backoff_delay(
                    attempt,
                    base_delay=self.policy.base_delay,
                    max_delay=self.policy.max_delay,
                    multiplier=self.policy.multiplier,
                    jitter=self.policy.jitter,
                )
                logger.debug(
                    "sync_retrying",
                    extra={
                        "correlation_id": correlation_id,
                        "operation": operation_name,
                        "attempt": attempt + 1,
                        "max_retries": self.policy.max_retries,
                        "delay_seconds": round(delay, 2),
                        "error": str(exc),
                    },
                )
                await self._sleep(delay)
                attempt += 1
