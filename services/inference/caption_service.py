"""Image captioning via a Hugging Face style inference endpoint."""

import logging
from typing import Any, Optional

import httpx

from services.errors import ClassificationFailed
from utils.settings import ServiceCredentials

LOGGER = logging.getLogger(__name__)


class CaptionService:
    """Send raw image bytes to the vision model and return its caption."""

    def __init__(self, client: httpx.AsyncClient, credentials: ServiceCredentials) -> None:
        """Initialize the service with a shared httpx client and endpoint settings."""
        if client is None:
            raise ValueError("An httpx.AsyncClient is required for captioning.")
        self.client = client
        self.credentials = credentials
        self.endpoint = f"{credentials.caption_url.rstrip('/')}/{credentials.vision_model}"

    def _headers(self, content_type: str) -> dict:
        headers = {"Content-Type": content_type}
        if self.credentials.api_token:
            headers["Authorization"] = f"Bearer {self.credentials.api_token}"
        else:
            LOGGER.warning("Vision API: no token configured - using free tier (may be rate limited)")
        return headers

    async def describe(self, image_bytes: bytes, content_type: str = "application/octet-stream") -> str:
        """Return the generated caption for `image_bytes`.

        Raises:
            ClassificationFailed: On transport errors, timeouts, non-2xx replies
                (the body becomes the detail), or a reply without text.
        """
        if not image_bytes:
            raise ValueError("image_bytes must contain data for captioning.")
        try:
            response = await self.client.post(
                self.endpoint,
                content=image_bytes,
                headers=self._headers(content_type),
                timeout=self.credentials.timeout,
            )
        except httpx.HTTPError as exc:
            LOGGER.error("Vision API request failed: %s", exc)
            raise ClassificationFailed(f"Vision API error: {exc}", cause=exc) from exc

        if response.is_error:
            LOGGER.error("Vision API error response (%s): %s", response.status_code, response.text)
            raise ClassificationFailed(f"Vision API error: {response.text}")

        try:
            caption = self._generated_text(response.json())
        except ValueError as exc:
            raise ClassificationFailed("Vision API returned an unreadable response", cause=exc) from exc
        if not caption:
            raise ClassificationFailed("Vision API returned no caption")
        return caption

    @staticmethod
    def _generated_text(payload: Any) -> Optional[str]:
        if isinstance(payload, list) and payload:
            payload = payload[0]
        if isinstance(payload, dict):
            text = payload.get("generated_text")
            return text.strip() if isinstance(text, str) else None
        return None
