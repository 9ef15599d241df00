"""Retry helpers shared by the HTTP client and the sync strategies."""

from __future__ import annotations

import random

from linkshelf.domain.exceptions.domain_exceptions import (
    AuthenticationError,
    AuthorizationError,
    RemoteSyncError,
    ValidationError,
)

_TRANSIENT_KEYWORDS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "unreachable",
    "rate limit",
    "rate limited",
    "too many requests",
    "temporary",
    "500",
    "502",
    "503",
    "504",
    "internal server error",
    "bad gateway",
    "service unavailable",
    "gateway timeout",
)

_PERMANENT_KEYWORDS = (
    "unauthorized",
    "forbidden",
    "not found",
    "bad request",
    "invalid or expired api token",
)


def is_transient_error(error: Exception) -> bool:
    """Decide whether retrying ``error`` could succeed.

    Typed remote errors carry their own ``retryable`` flag. Anything else is
    classified by message and exception type name.
    """
    if isinstance(error, AuthenticationError | AuthorizationError | ValidationError):
        return False
    if isinstance(error, RemoteSyncError):
        return bool(error.retryable)

    error_str = str(error).lower()
    if any(keyword in error_str for keyword in _PERMANENT_KEYWORDS):
        return False
    if any(keyword in error_str for keyword in _TRANSIENT_KEYWORDS):
        return True

    exception_type = type(error).__name__.lower()
    return any(name in exception_type for name in ("timeout", "connectionerror", "networkerror"))


def compute_backoff_delay(
    attempt: int,
    *,
    base_delay: float,
    max_delay: float,
    multiplier: float = 2.0,
    jitter: float = 0.1,
    rng: random.Random | None = None,
) -> float:
    """Exponential backoff for the given zero-based attempt, capped then jittered.

    Jitter spreads the delay by ``+/- jitter * delay`` and never goes below zero.
    """
    delay = min(base_delay * (multiplier**attempt), max_delay)
    if jitter > 0:
        source = rng or random
        delay += delay * jitter * (2 * source.random() - 1)
    return max(0.0, delay)
