"""Environment-backed configuration for the service.

Values are read with `os.getenv` once at startup (after `.env` has been
loaded by `main.py`) and passed explicitly to the services that need them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_HF_API_URL = "https://api-inference.huggingface.co/models/"
DEFAULT_VISION_MODEL = "nlpconnect/vit-gpt2-image-captioning"
DEFAULT_LLM_BASE_URL = "https://router.huggingface.co/v1"
DEFAULT_LLM_MODEL = "meta-llama/Llama-3.2-3B-Instruct"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServiceCredentials:
    """Endpoints and the optional bearer token for the inference services."""

    api_token: str | None = None
    caption_url: str = DEFAULT_HF_API_URL
    vision_model: str = DEFAULT_VISION_MODEL
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    timeout: float = 60.0

    @property
    def has_token(self) -> bool:
        return bool(self.api_token)

    @classmethod
    def from_env(cls) -> "ServiceCredentials":
        return cls(
            api_token=os.getenv("HF_API_TOKEN") or None,
            caption_url=os.getenv("HF_API_URL", DEFAULT_HF_API_URL),
            vision_model=os.getenv("VISION_MODEL", DEFAULT_VISION_MODEL),
            llm_base_url=os.getenv("LLM_BASE_URL", DEFAULT_LLM_BASE_URL),
            llm_model=os.getenv("LLM_MODEL", DEFAULT_LLM_MODEL),
            timeout=float(os.getenv("INFERENCE_TIMEOUT", "60")),
        )


@dataclass(frozen=True)
class AppSettings:
    """Top-level settings assembled from the process environment."""

    storage_dir: Path
    signing_secret: str
    public_base_url: str = ""
    analysis_enabled: bool = True
    log_level: str = "INFO"
    credentials: ServiceCredentials = field(default_factory=ServiceCredentials)

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Build settings from the environment.

        Raises:
            RuntimeError: If `STORAGE_SIGNING_SECRET` is set but empty.
        """
        secret = os.getenv("STORAGE_SIGNING_SECRET", "dev-signing-secret-change-me")
        if not secret.strip():
            raise RuntimeError("STORAGE_SIGNING_SECRET must not be empty.")
        storage_dir = Path(os.getenv("STORAGE_DIR", "./storage")).expanduser()
        return cls(
            storage_dir=storage_dir,
            signing_secret=secret,
            public_base_url=os.getenv("PUBLIC_BASE_URL", "").rstrip("/"),
            analysis_enabled=_env_bool("ANALYSIS_ENABLED", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            credentials=ServiceCredentials.from_env(),
        )
