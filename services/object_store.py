"""Private object storage for uploaded images.

`LocalObjectStore` keeps objects under a base directory keyed by path
(`{user_id}/{timestamp}_{filename}`) and grants temporary read access
through HMAC-signed URLs served by `routes/storage_route.py`. Any object
exposing the same async `put`/`delete`/`download`/`signed_url` methods and
a sync `public_url` can stand in for it (a managed bucket client, or a fake
in tests).
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Callable, Optional
from urllib.parse import quote, urlencode

import aiofiles
import aiofiles.os

LOGGER = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    """Base error raised by object store adapters."""


class ObjectExistsError(ObjectStoreError):
    """An object already exists at the key and overwrite was not allowed."""


class ObjectNotFoundError(ObjectStoreError):
    """No object exists at the key."""


class LocalObjectStore:
    """Filesystem-backed object store with signed, expiring read URLs.

    Args:
        base_dir: Directory holding all objects.
        signing_secret: Secret used to sign viewing URLs.
        public_base_url: Prefix for generated URLs (empty for relative URLs).
        clock: Returns the current Unix time in seconds; injectable for tests.
    """

    def __init__(
        self,
        base_dir: Path | str,
        signing_secret: str,
        public_base_url: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not signing_secret:
            raise ValueError("A signing secret is required for signed URLs.")
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._secret = signing_secret.encode("utf-8")
        self.public_base_url = public_base_url.rstrip("/")
        self._clock = clock

    def path_for(self, key: str) -> Path:
        """Resolve `key` under the base directory, rejecting traversal."""
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or any(p in ("..", ".", "") for p in parts):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_dir.joinpath(*parts)

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream", *, overwrite: bool = False) -> str:
        """Write `data` at `key` and return the key.

        Raises:
            ObjectExistsError: If the key is taken and `overwrite` is False.
        """
        path = self.path_for(key)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        mode = "wb" if overwrite else "xb"
        try:
            async with aiofiles.open(path, mode) as f:
                await f.write(data)
        except FileExistsError as exc:
            raise ObjectExistsError(f"The resource already exists: {key}") from exc
        LOGGER.debug("Stored %d bytes (%s) at %s", len(data), content_type, key)
        return key

    async def download(self, key: str) -> bytes:
        """Read the bytes stored at `key`.

        Raises:
            ObjectNotFoundError: If nothing is stored at the key.
        """
        path = self.path_for(key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"Object not found: {key}") from exc

    async def delete(self, key: str) -> bool:
        """Remove the object at `key`. Returns False if it was already gone."""
        path = self.path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(key))

    def public_url(self, key: str) -> str:
        """Reference URL for `key`; reading it still requires a signature."""
        return f"{self.public_base_url}/storage/{quote(key)}"

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Issue a URL granting read access to `key` for `ttl_seconds`.

        Raises:
            ObjectNotFoundError: If nothing is stored at the key.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive.")
        if not await self.exists(key):
            raise ObjectNotFoundError(f"Object not found: {key}")
        expires = int(self._clock()) + int(ttl_seconds)
        query = urlencode({"expires": expires, "signature": self._sign(key, expires)})
        return f"{self.public_url(key)}?{query}"

    def verify(self, key: str, expires: int, signature: Optional[str]) -> bool:
        """Return True if `signature` is valid for `key` and has not expired."""
        if not signature or expires < int(self._clock()):
            return False
        return hmac.compare_digest(self._sign(key, expires), signature)

    def _sign(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()
