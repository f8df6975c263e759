# backend/services/errors.py
"""Error taxonomy shared by the query, deletion, ingestion and alarm paths."""
from typing import Optional


class KeepWatchError(Exception):
    """Base class for errors raised by the core services"""
    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class InputError(KeepWatchError):
    """Malformed filter, unparsable time window or out-of-range paging"""
    status_code = 400
    error = "invalid_input"


class NotFoundError(KeepWatchError):
    """Unresolvable project or record"""
    status_code = 404
    error = "not_found"


class IndexUnavailableError(KeepWatchError):
    """Search index down or disabled; read paths fall back to the primary store"""
    status_code = 503
    error = "index_unavailable"


class MirrorInconsistencyError(KeepWatchError):
    """Search index write/delete failed after the primary store succeeded"""
    status_code = 500
    error = "mirror_inconsistency"


class DeliveryError(KeepWatchError):
    """A single alarm channel failed to deliver"""
    status_code = 502
    error = "delivery_failed"
