"""Per-image viewing URLs for private objects, cached until shortly before expiry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from services.errors import SignedUrlFailed

LOGGER = logging.getLogger(__name__)

SIGNED_URL_TTL = 3600
EXPIRY_MARGIN = 60


@dataclass
class SignedUrlEntry:
    url: str
    expires_at: float


class SignedUrlCache:
    """Issue and hold time-limited URLs keyed by storage path.

    An entry within `margin` seconds of its expiry counts as absent, so a
    returned URL is always valid for at least that long.
    """

    def __init__(
        self,
        object_store: Any,
        ttl_seconds: int = SIGNED_URL_TTL,
        margin: int = EXPIRY_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if margin >= ttl_seconds:
            raise ValueError("margin must be shorter than ttl_seconds.")
        self.object_store = object_store
        self.ttl_seconds = ttl_seconds
        self.margin = margin
        self._clock = clock
        self._entries: Dict[str, SignedUrlEntry] = {}

    def peek(self, storage_path: str) -> Optional[SignedUrlEntry]:
        """Return the live entry for `storage_path`, dropping it if expired."""
        entry = self._entries.get(storage_path)
        if entry is None:
            return None
        if entry.expires_at - self.margin <= self._clock():
            del self._entries[storage_path]
            return None
        return entry

    async def get_display_url(self, storage_path: str) -> str:
        """Return a viewing URL for `storage_path`.

        Raises:
            SignedUrlFailed: If the object store cannot issue a URL.
        """
        entry = self.peek(storage_path)
        if entry is not None:
            return entry.url
        issued_at = self._clock()
        try:
            url = await self.object_store.signed_url(storage_path, self.ttl_seconds)
        except Exception as exc:
            LOGGER.error("Error generating signed URL for %s: %s", storage_path, exc)
            raise SignedUrlFailed(f"Failed to load image: {exc}", cause=exc) from exc
        self._entries[storage_path] = SignedUrlEntry(url=url, expires_at=issued_at + self.ttl_seconds)
        return url

    def invalidate(self, storage_path: str) -> None:
        self._entries.pop(storage_path, None)

    def __len__(self) -> int:
        return len(self._entries)
