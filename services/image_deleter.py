"""Explicit user deletion of a stored image and its record."""

import logging
from typing import Any, Optional

from models.image_record import ImageRecord
from models.upload_batch import UserSession
from services.errors import DeleteFailed, Unauthenticated
from services.signed_url_cache import SignedUrlCache

LOGGER = logging.getLogger(__name__)


class ImageDeleter:
    """Remove the object first, then the record that points at it."""

    def __init__(
        self,
        session: UserSession,
        object_store: Any,
        record_store: Any,
        url_cache: Optional[SignedUrlCache] = None,
    ) -> None:
        self.session = session
        self.object_store = object_store
        self.record_store = record_store
        self.url_cache = url_cache

    async def delete(self, image_id: int) -> ImageRecord:
        """Delete the bound user's image `image_id` and return the removed record.

        Raises:
            Unauthenticated: If no user is bound.
            KeyError: If the user owns no such image.
            DeleteFailed: If the storage or record deletion fails.
        """
        if not self.session.is_authenticated:
            raise Unauthenticated("You must be logged in to delete images")
        record = await self.record_store.get_for_user(image_id, self.session.user_id)
        if record is None:
            raise KeyError(f"Image {image_id} not found")

        try:
            await self.object_store.delete(record.storage_path)
        except Exception as exc:
            raise DeleteFailed(f"Failed to delete from storage: {exc}", cause=exc) from exc

        try:
            await self.record_store.delete(record.id, record.user_id)
        except Exception as exc:
            raise DeleteFailed(f"Failed to delete from database: {exc}", cause=exc) from exc

        if self.url_cache is not None:
            self.url_cache.invalidate(record.storage_path)
        LOGGER.info("Deleted image %s (%s)", record.id, record.storage_path)
        return record
