"""Error taxonomy for uploads, analysis, display and deletion."""

from typing import Any, List, Optional


class UploadError(Exception):
    """Base class for user-facing failures; `message` is safe to show."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        # Records already committed when a batch stopped part-way.
        self.committed: List[Any] = []


class QuotaExceeded(UploadError):
    """The upload would push the user past the image limit."""


class Unauthenticated(UploadError):
    """No authenticated user is bound to the request."""


class StorageWriteFailed(UploadError):
    """Writing bytes to the object store failed."""


class RecordInsertFailed(UploadError):
    """Inserting the image record failed; the stored object was removed."""


class ClassificationFailed(UploadError):
    """Caption or classification of one record failed (non-fatal)."""


class SignedUrlFailed(UploadError):
    """A viewing URL could not be issued for one stored object."""


class DeleteFailed(UploadError):
    """Removing an image from storage or the record store failed."""
