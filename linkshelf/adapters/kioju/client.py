"""Kioju API client.

The service exposes one endpoint and selects the operation with an
``action`` parameter. Reads are GET requests with query parameters; writes
are form-encoded POSTs. Every request is authenticated with ``X-Api-Key``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import ValidationError as PydanticValidationError

from linkshelf.adapters.kioju.models import (
    ActionResponse,
    AddLinkResponse,
    CollectionListResponse,
    CreateCollectionResponse,
    LinkListResponse,
    PremiumStatus,
    RemoteCollection,
    RemoteLink,
)
from linkshelf.config.remote import DEFAULT_API_URL, DEFAULT_USER_AGENT
from linkshelf.domain.exceptions.domain_exceptions import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from linkshelf.security.rate_limiter import RemoteRateLimiter
from linkshelf.utils.retry_utils import compute_backoff_delay

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER = 0.1

MAX_PAGE_SIZE = 100


def _is_retryable_error(exc: Exception) -> bool:
    """Only transport failures and 5xx answers are retried at this layer.

    429 is handled by the rate limiter and never retried here.
    """
    if isinstance(exc, RateLimitError):
        return False
    if isinstance(exc, httpx.ConnectError | httpx.TimeoutException | httpx.NetworkError):
        return True
    return isinstance(exc, NetworkError)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async function with exponential backoff retry.

    Raises:
        NetworkError: If transport failures persist after all retries
        RemoteSyncError: Non-retryable failures are raised immediately
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not _is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    "kioju_retry_exhausted",
                    extra={"operation": operation_name, "attempts": attempt + 1, "error": str(e)},
                )
                if isinstance(e, NetworkError):
                    raise
                raise NetworkError(f"Network error: {e}") from e

            delay = compute_backoff_delay(
                attempt, base_delay=base_delay, max_delay=max_delay, jitter=jitter
            )
            logger.warning(
                "kioju_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)

    msg = f"{operation_name} failed"
    raise NetworkError(msg)


class KiojuClient:
    """Async HTTP client for the Kioju bookmark API."""

    DEFAULT_TIMEOUTS: dict[str, float] = {
        "list": 30.0,
        "add": 30.0,
        "update": 15.0,
        "delete": 15.0,
        "premium_status": 10.0,
        "collections_list": 30.0,
        "collections_create": 15.0,
        "collections_update": 15.0,
        "collections_delete": 15.0,
        "collections_assign_link": 15.0,
        "collections_get_links": 30.0,
        "collections_get_uncategorized": 30.0,
    }

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        api_key: str = "",
        timeout: float = 30.0,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        user_agent: str = DEFAULT_USER_AGENT,
        rate_limiter: RemoteRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Full URL of the single API endpoint
            api_key: Value sent in the ``X-Api-Key`` header
            timeout: Default request timeout in seconds
            max_retries: Retries for connection errors and 5xx responses
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            user_agent: ``User-Agent`` header value
            rate_limiter: Shared cooldown tracker; one is created if omitted
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.user_agent = user_agent
        self.rate_limiter = rate_limiter or RemoteRateLimiter()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def get_timeout(self, action: str) -> float:
        return self.DEFAULT_TIMEOUTS.get(action, self.timeout)

    async def __aenter__(self) -> Self:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Client not initialized. Use async context manager."
            raise RuntimeError(msg)
        return self._client

    # -- transport ----------------------------------------------------------

    async def _with_retry(self, func: Callable[[], Awaitable[T]], operation_name: str) -> T:
        return await retry_with_backoff(
            func,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation_name,
        )

    async def _request(
        self,
        action: str,
        *,
        params: dict[str, Any] | None = None,
        form: dict[str, str] | None = None,
    ) -> Any:
        """Send one action and return the decoded JSON body.

        The cooldown check runs before every attempt so no request leaves the
        process while the remote has asked us to back off.
        """
        timeout = self.get_timeout(action)

        async def _send() -> Any:
            self.rate_limiter.ensure_can_request()
            if form is None:
                query = {"action": action, **(params or {})}
                response = await self.client.get(self.api_url, params=query, timeout=timeout)
            else:
                body = {"action": action, **form}
                response = await self.client.post(self.api_url, data=body, timeout=timeout)
            self._raise_for_status(response)
            return self._decode(response, action)

        return await self._with_retry(_send, action)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429:
            seconds = self.rate_limiter.record_rate_limit(response.headers)
            raise RateLimitError(
                f"Rate limited. Please wait {seconds} seconds.", retry_after=seconds
            )
        if status == 401:
            raise AuthenticationError("Invalid or expired API token")
        if status == 403:
            raise AuthorizationError("Access forbidden. Check your API token permissions.")
        if status >= 500:
            raise NetworkError(
                f"Server error: HTTP {status}: {response.reason_phrase}",
                details={"status_code": status},
            )
        raise ApiError(f"HTTP {status}: {response.reason_phrase}", status_code=status)

    @staticmethod
    def _decode(response: httpx.Response, action: str) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            msg = f"Failed to parse API response for {action}: {exc}"
            raise ApiError(msg, status_code=response.status_code) from exc

    @staticmethod
    def _validate(model: type[T], data: Any, action: str) -> T:
        try:
            parsed = model.model_validate(data)  # type: ignore[attr-defined]
        except PydanticValidationError as exc:
            msg = f"Unexpected response shape for {action}: {exc.error_count()} errors"
            raise ApiError(msg) from exc
        if isinstance(parsed, ActionResponse) and not parsed.success:
            raise ApiError(parsed.message or f"{action} failed")
        return parsed

    # -- links --------------------------------------------------------------

    async def list_links(self, *, limit: int = MAX_PAGE_SIZE, offset: int = 0) -> list[RemoteLink]:
        if limit < 1 or limit > MAX_PAGE_SIZE:
            msg = f"Limit must be between 1 and {MAX_PAGE_SIZE}"
            raise ValidationError(msg)
        if offset < 0:
            msg = "Offset must be non-negative"
            raise ValidationError(msg)

        data = await self._request("list", params={"limit": limit, "offset": offset})
        if isinstance(data, list):
            return [RemoteLink.model_validate(item) for item in data if isinstance(item, dict)]
        return self._validate(LinkListResponse, data, "list").links

    async def add_link(
        self,
        *,
        url: str,
        title: str | None = None,
        tags: list[str] | None = None,
        is_private: bool = False,
        capture_description: bool = False,
    ) -> str:
        form = {
            "url": url,
            "is_private": "1" if is_private else "0",
            "capture_description": "1" if capture_description else "0",
        }
        if title:
            form["title"] = title
        if tags:
            form["tags"] = ",".join(tags)

        data = await self._request("add", form=form)
        response = self._validate(AddLinkResponse, data, "add")
        remote_id = response.remote_id
        if not remote_id:
            msg = "Server did not return a link ID"
            raise ApiError(msg)
        logger.info("kioju_link_created", extra={"remote_id": remote_id})
        return remote_id

    async def update_link(
        self,
        remote_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        is_private: bool | None = None,
        tags: list[str] | None = None,
    ) -> None:
        form: dict[str, str] = {"id": self._require_id(remote_id, "Link")}
        if title is not None:
            form["title"] = title
        if description is not None:
            form["description"] = description
        if is_private is not None:
            form["is_private"] = "1" if is_private else "0"
        if tags is not None:
            form["tags"] = ",".join(tags)
        self._validate(ActionResponse, await self._request("update", form=form), "update")

    async def delete_link(self, remote_id: str) -> None:
        form = {"id": self._require_id(remote_id, "Link")}
        self._validate(ActionResponse, await self._request("delete", form=form), "delete")

    # -- collections --------------------------------------------------------

    async def list_collections(self) -> list[RemoteCollection]:
        data = await self._request("collections_list")
        return self._validate(CollectionListResponse, data, "collections_list").collections

    async def create_collection(
        self,
        *,
        name: str,
        description: str = "",
        visibility: str = "private",
        tags: list[str] | None = None,
    ) -> str:
        form = {"name": name.strip(), "visibility": visibility}
        if description and description.strip():
            form["description"] = description.strip()
        if tags:
            form["tags"] = json.dumps(tags)

        data = await self._request("collections_create", form=form)
        response = self._validate(CreateCollectionResponse, data, "collections_create")
        remote_id = response.remote_id
        if not remote_id:
            msg = "Server did not return a collection ID"
            raise ApiError(msg)
        logger.info("kioju_collection_created", extra={"remote_id": remote_id, "name": name})
        return remote_id

    async def update_collection(
        self,
        remote_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        visibility: str | None = None,
        tags: list[str] | None = None,
    ) -> None:
        form: dict[str, str] = {"id": self._require_id(remote_id, "Collection")}
        if name is not None:
            form["name"] = name.strip()
        if description is not None:
            form["description"] = description.strip()
        if visibility is not None:
            form["visibility"] = visibility
        if tags is not None:
            form["tags"] = json.dumps(tags)
        data = await self._request("collections_update", form=form)
        self._validate(ActionResponse, data, "collections_update")

    async def delete_collection(self, remote_id: str, *, delete_mode: str = "move_links") -> None:
        if delete_mode not in {"move_links", "delete_links"}:
            msg = 'Invalid delete mode: must be "move_links" or "delete_links"'
            raise ValidationError(msg)
        form = {"id": self._require_id(remote_id, "Collection"), "delete_mode": delete_mode}
        data = await self._request("collections_delete", form=form)
        self._validate(ActionResponse, data, "collections_delete")

    async def assign_link_to_collection(
        self, link_remote_id: str, collection_remote_id: str | None
    ) -> None:
        form = {"link_id": self._require_id(link_remote_id, "Link")}
        if collection_remote_id and collection_remote_id.strip():
            form["collection_id"] = collection_remote_id.strip()
        data = await self._request("collections_assign_link", form=form)
        self._validate(ActionResponse, data, "collections_assign_link")

    async def get_collection_links(self, collection_remote_id: str) -> list[RemoteLink]:
        params = {"id": self._require_id(collection_remote_id, "Collection")}
        data = await self._request("collections_get_links", params=params)
        return self._validate(LinkListResponse, data, "collections_get_links").links

    async def get_uncategorized_links(self) -> list[RemoteLink]:
        data = await self._request("collections_get_uncategorized")
        return self._validate(LinkListResponse, data, "collections_get_uncategorized").links

    # -- account ------------------------------------------------------------

    async def check_premium_status(self) -> PremiumStatus:
        data = await self._request("premium_status")
        return self._validate(PremiumStatus, data, "premium_status")

    @staticmethod
    def _require_id(value: str, kind: str) -> str:
        cleaned = str(value or "").strip()
        if not cleaned:
            msg = f"{kind} ID cannot be empty"
            raise ValidationError(msg)
        return cleaned
