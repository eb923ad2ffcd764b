"""Caption classification using an OpenAI-compatible chat completions endpoint."""

import logging
import time
from typing import Any, Dict

from openai import AsyncOpenAI

from services.errors import ClassificationFailed
from services.inference.prompts import build_classification_prompt, build_system_prompt
from services.inference.response_parser import extract_json_object, parse_classification
from utils.settings import ServiceCredentials

LOGGER = logging.getLogger(__name__)

# The SDK refuses an empty key; anonymous endpoints ignore this value.
ANONYMOUS_API_KEY = "anonymous"


def build_llm_client(credentials: ServiceCredentials) -> AsyncOpenAI:
    """Create the async client for the language model endpoint.

    Without a token a placeholder key is sent and the endpoint serves
    anonymous, rate-limited requests.
    """
    if not credentials.has_token:
        LOGGER.warning("LLM API: no token configured - using free tier (may be rate limited)")
    return AsyncOpenAI(
        api_key=credentials.api_token or ANONYMOUS_API_KEY,
        base_url=credentials.llm_base_url,
        timeout=credentials.timeout,
        max_retries=1,
    )


class ClassificationService:
    """Turn an image caption into structured sample classification fields."""

    def __init__(self, client: AsyncOpenAI, model: str, *, max_tokens: int = 500, temperature: float = 0.3) -> None:
        """Initialize the service with an OpenAI-compatible async client."""
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = build_system_prompt()

    async def classify(self, description: str) -> Dict[str, Any]:
        """Classify a caption and return normalized classification fields.

        Raises:
            ClassificationFailed: If the request fails or no JSON object can be
                parsed from the reply.
        """
        start_time = time.time()
        text = await self._complete(build_classification_prompt(description))
        try:
            payload = extract_json_object(text)
        except ValueError as exc:
            LOGGER.error("Unparsable classification reply: %r", text)
            raise ClassificationFailed("Unable to parse analysis results", cause=exc) from exc
        result = parse_classification(payload)
        LOGGER.info("Classification finished in %.2fs (relevant=%s)", time.time() - start_time, result["is_relevant"])
        return result

    async def _complete(self, prompt: str) -> str:
        """Send the prompt and return the generated text."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            logging.error("Error during LLM API call: %s", exc)
            raise ClassificationFailed(f"LLM API error: {exc}", cause=exc) from exc

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None) if message else None
        if not content:
            raise ClassificationFailed("LLM API returned no text")
        return content
