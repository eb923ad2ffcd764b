"""Image resizer service.

Provides a small OOP wrapper around Pillow that brings an uploaded image
within a maximum pixel width and byte size before it is stored. Images
already within both limits pass through untouched; larger ones are scaled
down to the maximum width (aspect ratio preserved) and re-encoded with a
decreasing quality until they fit or the quality floor / attempt cap is
reached, whichever comes first. The last encoding is accepted even if it
is still above the byte limit.

Public class: `ImageResizer`

Example:
    resizer = ImageResizer()
    result = resizer.resize(data, "photo.jpg", "image/jpeg")
"""
from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from PIL import Image

MAX_WIDTH = 1920
MAX_FILE_SIZE = 2 * 1024 * 1024

_FORMAT_BY_MIME = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}
_MIME_BY_FORMAT = {"JPEG": "image/jpeg", "PNG": "image/png", "GIF": "image/gif", "WEBP": "image/webp"}


@dataclass
class ResizeResult:
    """Encoded output of a resize together with its size bookkeeping."""

    data: bytes
    filename: str
    content_type: str
    original_size: int
    new_size: int
    was_compressed: bool


class ImageResizer:
    """Downscale and recompress images to fit width and byte limits.

    Args:
        max_width: Maximum pixel width of the output.
        max_bytes: Target maximum encoded size in bytes.
        start_quality: Quality used for the first re-encode (1-100).
        quality_step: Amount the quality drops on each retry.
        min_quality: Retries stop once quality is at or below this floor.
        max_attempts: Maximum number of quality reductions.
        background: Color used to flatten transparency for formats without alpha.
    """

    def __init__(
        self,
        max_width: int = MAX_WIDTH,
        max_bytes: int = MAX_FILE_SIZE,
        start_quality: int = 90,
        quality_step: int = 10,
        min_quality: int = 50,
        max_attempts: int = 5,
        background: Tuple[int, int, int] = (255, 255, 255),
    ) -> None:
        self.max_width = max_width
        self.max_bytes = max_bytes
        self.start_quality = start_quality
        self.quality_step = quality_step
        self.min_quality = min_quality
        self.max_attempts = max_attempts
        self.background = background

    def needs_resize(self, width: int, size: int) -> bool:
        return width > self.max_width or size > self.max_bytes

    def resize(self, data: bytes, filename: str, content_type: str | None = None) -> ResizeResult:
        """Return `data` brought within the configured limits.

        Args:
            data: Encoded image bytes.
            filename: Original filename, kept on the output.
            content_type: MIME type of the input; detected from the bytes when unknown.

        Returns:
            A `ResizeResult`. When no resize was needed `data` is returned as-is
            and `was_compressed` is False.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        original_size = len(data)
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except Exception as exc:
            raise ValueError(f"{filename} is not a supported image") from exc

        fmt = _FORMAT_BY_MIME.get((content_type or "").lower()) or (src.format or "JPEG").upper()
        out_type = _MIME_BY_FORMAT.get(fmt, content_type or "image/jpeg")

        if not self.needs_resize(src.width, original_size):
            kept_type = content_type if (content_type or "").lower() in _FORMAT_BY_MIME else out_type
            return ResizeResult(data, filename, kept_type, original_size, original_size, False)

        img = self._scaled(src)
        img = self._prepare_mode(img, fmt)

        quality = self.start_quality
        attempts = 0
        encoded = self._encode(img, fmt, quality)
        while len(encoded) > self.max_bytes and quality > self.min_quality and attempts < self.max_attempts:
            quality -= self.quality_step
            attempts += 1
            encoded = self._encode(img, fmt, quality)

        return ResizeResult(encoded, filename, out_type, original_size, len(encoded), True)

    async def resize_many(self, files: Sequence[Tuple[bytes, str, str | None]]) -> List[ResizeResult]:
        """Resize several `(data, filename, content_type)` tuples concurrently, keeping order."""
        # Pillow work is blocking -> run each file in a worker thread
        return list(await asyncio.gather(*(asyncio.to_thread(self.resize, d, n, t) for d, n, t in files)))

    def _scaled(self, src: Image.Image) -> Image.Image:
        if src.width <= self.max_width:
            return src.copy()
        height = max(1, round(src.height * self.max_width / src.width))
        return src.resize((self.max_width, height), Image.LANCZOS)

    def _prepare_mode(self, img: Image.Image, fmt: str) -> Image.Image:
        if fmt == "JPEG":
            if img.mode in ("RGBA", "LA", "P"):
                img = img.convert("RGBA")
                flat = Image.new("RGB", img.size, self.background)
                flat.paste(img, mask=img.split()[3])
                return flat
            if img.mode != "RGB":
                return img.convert("RGB")
        return img

    @staticmethod
    def _encode(img: Image.Image, fmt: str, quality: int) -> bytes:
        out_io = io.BytesIO()
        if fmt in ("JPEG", "WEBP"):
            img.save(out_io, format=fmt, quality=quality)
        else:
            # PNG and GIF ignore quality; only optimisation applies
            img.save(out_io, format=fmt, optimize=True)
        return out_io.getvalue()
