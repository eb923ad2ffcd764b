import inspect
import logging
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request

from routes.image_route import router as image_router
from routes.storage_route import router as storage_router
from routes.upload_batch_route import router as upload_batch_router
from services.batch_store import BatchStore
from services.image_resizer import ImageResizer
from services.inference.caption_service import CaptionService
from services.inference.classification_service import ClassificationService, build_llm_client
from services.inference.sample_analyzer import SampleAnalyzer
from services.object_store import LocalObjectStore
from services.signed_url_cache import SignedUrlCache
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import AppSettings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


async def _close_client(client) -> None:
    """Close a client exposing `aclose` or `close`, sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        # Shutdown errors are logged, not raised.
        LOGGER.warning("Error while closing %s: %s", type(client).__name__, exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite record store (at DATABASE_DIR/app.db)
      - the private object store (under STORAGE_DIR)
      - the pending batch store and the signed-URL cache
      - the caption (httpx) and classification (OpenAI-compatible) clients
    and attach them to `app.state`.
    """
    settings = AppSettings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.state.settings = settings

    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    object_store = LocalObjectStore(settings.storage_dir, settings.signing_secret, settings.public_base_url)
    app.state.object_store = object_store
    app.state.batch_store = BatchStore(ImageResizer())
    app.state.url_cache = SignedUrlCache(object_store)

    credentials = settings.credentials
    http_client = httpx.AsyncClient(timeout=credentials.timeout)
    app.state.http_client = http_client
    app.state.openai_client = None
    app.state.analyzer = None
    if settings.analysis_enabled:
        try:
            openai_client = build_llm_client(credentials)
        except Exception as exc:
            raise RuntimeError("Failed to initialize the language model client") from exc
        app.state.openai_client = openai_client
        app.state.analyzer = SampleAnalyzer(
            CaptionService(http_client, credentials),
            ClassificationService(openai_client, credentials.llm_model),
        )
    else:
        LOGGER.info("Sample analysis disabled; uploads will stay unanalyzed")

    try:
        yield
    finally:
        for name in ("openai_client", "http_client"):
            client = getattr(app.state, name, None)
            if client is not None:
                await _close_client(client)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(title="Sample Vault", lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports which shared clients are available.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        has_store = getattr(request.app.state, "object_store", None) is not None
        has_analysis = getattr(request.app.state, "analyzer", None) is not None
        return {"ok": True, "db_initialized": has_db, "storage_available": has_store, "analysis_available": has_analysis}

    # Register application routers
    app.include_router(image_router)
    app.include_router(upload_batch_router)
    app.include_router(storage_router)

    return app


app = create_app()
