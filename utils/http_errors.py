"""Translate domain errors into HTTP responses."""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from services.errors import (
    DeleteFailed,
    QuotaExceeded,
    RecordInsertFailed,
    SignedUrlFailed,
    StorageWriteFailed,
    Unauthenticated,
    UploadError,
)

_STATUS_BY_ERROR = (
    (Unauthenticated, 401),
    (QuotaExceeded, 409),
    (StorageWriteFailed, 502),
    (RecordInsertFailed, 502),
    (SignedUrlFailed, 502),
    (DeleteFailed, 502),
)


def status_for(exc: UploadError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def to_http_exception(exc: UploadError, notices: Optional[List[Dict[str, Any]]] = None) -> HTTPException:
    """Build an HTTPException whose detail carries the message and any notices."""
    detail: Dict[str, Any] = {"error": type(exc).__name__, "message": exc.message}
    if exc.committed:
        detail["committed"] = len(exc.committed)
    if notices:
        detail["notices"] = notices
    headers = {"WWW-Authenticate": "X-User-Id"} if isinstance(exc, Unauthenticated) else None
    return HTTPException(status_code=status_for(exc), detail=detail, headers=headers)
