"""Gallery listing and quota view for the bound user."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from models.image_record import ImageRecord
from models.upload_batch import UserSession
from services.errors import Unauthenticated
from services.upload_orchestrator import MAX_IMAGES

LOGGER = logging.getLogger(__name__)


def gallery_sort_key(record: ImageRecord):
    """Order by display_order ascending (absent last), then newest first."""
    order = record.display_order
    return (order is None, order if order is not None else 0, -(record.created_at or 0))


def sort_for_gallery(records: Iterable[ImageRecord]) -> List[ImageRecord]:
    return sorted(records, key=gallery_sort_key)


class GalleryReader:
    """Fetch the user's images in display order and expose the quota count.

    Args:
        session: The user whose images are listed.
        record_store: Store with async `list_for_user(user_id)`.
        limit: Per-user image quota.
    """

    def __init__(self, session: UserSession, record_store: Any, limit: int = MAX_IMAGES) -> None:
        self.session = session
        self.record_store = record_store
        self.limit = limit
        self.images: List[ImageRecord] = []
        self.error: Optional[str] = None
        self.loaded = False

    @property
    def count(self) -> int:
        return len(self.images)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def at_limit(self) -> bool:
        return self.count >= self.limit

    async def list(self) -> List[ImageRecord]:
        """Load the bound user's records.

        Raises:
            Unauthenticated: If no user is bound.
        """
        if not self.session.is_authenticated:
            self.images = []
            raise Unauthenticated("You must be logged in to view images")
        self.error = None
        try:
            rows = await self.record_store.list_for_user(self.session.user_id)
        except Exception as exc:
            self.error = str(exc)
            LOGGER.error("Error fetching images: %s", exc)
            raise
        # Owner filter repeated on top of the store's own scoping.
        self.images = sort_for_gallery(r for r in rows if r.user_id == self.session.user_id)
        self.loaded = True
        return list(self.images)

    async def refetch(self) -> List[ImageRecord]:
        return await self.list()

    def quota(self) -> dict:
        return {"count": self.count, "limit": self.limit, "remaining": self.remaining}
