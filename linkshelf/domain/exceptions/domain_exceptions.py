"""Domain-specific exceptions.

Local rule violations (validation, duplicates, missing rows) and the
remote-failure taxonomy used by the sync engine. Reconcilers aggregate
remote failures into results; mutation services let local failures propagate.
"""


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize domain exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainException):
    """Raised when input fails validation before any store or network effect."""

    pass


class ResourceNotFoundError(DomainException):
    """Raised when a requested link or collection does not exist."""

    pass


class DuplicateResourceError(DomainException):
    """Raised when a link URL or collection name is already taken."""

    pass


class SyncInProgressError(DomainException):
    """Raised when a sync run is requested while another one is in flight."""

    pass


class RemoteSyncError(DomainException):
    """Base class for failures talking to the remote service."""

    retryable: bool = False


class NetworkError(RemoteSyncError):
    """Connection failure, timeout, or server-side (5xx) error."""

    retryable = True


class ApiError(RemoteSyncError):
    """Remote API rejected the request or answered with ``success: false``."""

    def __init__(
        self, message: str, status_code: int | None = None, details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.retryable = status_code is not None and status_code >= 500


class AuthenticationError(RemoteSyncError):
    """API key missing, invalid, or expired (HTTP 401)."""

    pass


class AuthorizationError(RemoteSyncError):
    """API key lacks permission for the operation (HTTP 403)."""

    pass


class PremiumRequiredError(AuthorizationError):
    """Collection management requires a premium account."""

    pass


class RateLimitError(RemoteSyncError):
    """Remote asked us to back off (HTTP 429) or a cooldown is still active."""

    retryable = True

    def __init__(self, message: str, retry_after: int = 0, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


class PartialBatchFailure(DomainException):
    """Some items of a batch failed; successful items are already committed."""

    def __init__(
        self, message: str, failed_item_ids: list[int] | None = None, details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.failed_item_ids = list(failed_item_ids or [])
