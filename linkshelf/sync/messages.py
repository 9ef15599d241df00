from __future__ import annotations

from linkshelf.sync.models import SyncResult, SyncResultType


def format_sync_result_message(result: SyncResult, operation: str) -> str:
    """User-facing sentence for a mutation's sync outcome, e.g. ``"Link added"``."""
    if result.result_type is SyncResultType.IMMEDIATE_SUCCESS:
        return f"{operation} and synced successfully"
    if result.result_type is SyncResultType.IMMEDIATE_FAILURE:
        return f"{operation} locally, but server sync failed: {result.error_message}"
    if result.result_type is SyncResultType.IMMEDIATE_PARTIAL_FAILURE:
        return f"{operation} partially synced. Some items failed: {result.error_message}"
    return f"{operation} locally. Use sync to upload changes."
