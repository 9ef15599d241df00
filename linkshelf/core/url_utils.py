from __future__ import annotations

import logging
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES: frozenset[str] = frozenset(["http", "https"])


def _validate_url_input(url: str) -> None:
    if not url:
        msg = "URL cannot be empty"
        raise ValueError(msg)
    if not isinstance(url, str):
        msg = "URL must be a string"
        raise ValueError(msg)
    if len(url) > 2048:
        msg = "URL too long"
        raise ValueError(msg)
    if "\x00" in url:
        msg = "URL contains null bytes"
        raise ValueError(msg)
    if any(ord(char) < 32 for char in url):
        msg = "URL contains control characters"
        raise ValueError(msg)


def validate_url(url: str) -> str:
    """Validate a user-supplied link URL and return it stripped.

    Only absolute http(s) URLs with a host are accepted.

    Raises:
        ValueError: If the URL is empty, malformed, or uses another scheme.
    """
    candidate = (url or "").strip()
    _validate_url_input(candidate)
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
        msg = "URL must start with http:// or https://"
        raise ValueError(msg)
    if not parsed.netloc or not parsed.hostname:
        msg = "URL must include a host"
        raise ValueError(msg)
    return candidate


def normalize_url(url: str) -> str:
    """Normalize a URL for duplicate detection.

    - Lowercase the whole URL
    - Default missing scheme to https
    - Strip a leading ``www.`` from the host
    - Drop the trailing slash unless the path is the root (an empty path is the root)
    - Keep query and fragment

    Invalid input is returned trimmed and lowercased so callers can still
    compare it.
    """
    candidate = (url or "").strip().lower()
    if not candidate:
        return ""
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        parsed = urlparse(candidate)
    except ValueError:
        logger.debug("url_normalize_failed", extra={"url": url})
        return candidate

    netloc = parsed.netloc
    if netloc.startswith("www."):
        netloc = netloc[4:]

    path = parsed.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    return urlunparse((parsed.scheme, netloc, path, parsed.params, parsed.query, parsed.fragment))


def urls_equivalent(left: str, right: str) -> bool:
    """Return True when two URLs point to the same bookmark."""
    return normalize_url(left) == normalize_url(right)
