import asyncio
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, UploadFile

from dal.image_dal import ImageDAL
from models.analysis import AnalysisResult, bristol_interpretation
from models.image_record import ImageRecord
from models.upload_batch import PendingFile, UploadBatch, UserSession
from services.errors import SignedUrlFailed, UploadError
from services.gallery_reader import GalleryReader
from services.image_deleter import ImageDeleter
from services.notifications import NotificationChannel
from services.signed_url_cache import SignedUrlCache
from services.upload_orchestrator import UploadOrchestrator
from utils.http_errors import to_http_exception
from utils.media_validation import read_image_bytes
from utils.request_session import require_session


def app_state(request: Request, name: str) -> Any:
    """Retrieve a shared client from the app state or fail with 500."""
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=500, detail=f"{name} not initialized.")
    return value


def bound_session(request: Request) -> UserSession:
    try:
        return require_session(request)
    except UploadError as exc:
        raise to_http_exception(exc) from exc


def serialize_record(record: ImageRecord, display_url: Optional[str] = None, load_error: Optional[str] = None) -> Dict[str, Any]:
    data = asdict(record)
    data["bristol_interpretation"] = bristol_interpretation(record.bristol_score) if record.bristol_score else None
    data["display_url"] = display_url
    data["load_error"] = load_error
    return data


def serialize_analysis(result: AnalysisResult) -> Dict[str, Any]:
    data = asdict(result)
    data["bristol_interpretation"] = bristol_interpretation(result.bristol_score) if result.bristol_score else None
    return data


async def _with_display_url(cache: SignedUrlCache, record: ImageRecord) -> Dict[str, Any]:
    """Serialize one record; a URL failure only marks that image as failed to load."""
    try:
        url = await cache.get_display_url(record.storage_path)
    except SignedUrlFailed as exc:
        return serialize_record(record, load_error=exc.message)
    return serialize_record(record, display_url=url)


async def list_images(request: Request) -> Dict[str, Any]:
    """Return the user's gallery in display order with quota counters and viewing URLs."""
    session = bound_session(request)
    reader = GalleryReader(session, ImageDAL(app_state(request, "db_initializer")))
    records = await reader.list()
    cache: SignedUrlCache = app_state(request, "url_cache")
    images = await asyncio.gather(*(_with_display_url(cache, r) for r in records))
    return {"images": list(images), **reader.quota()}


async def get_display_url(request: Request, image_id: int) -> Dict[str, Any]:
    """Return a time-limited viewing URL for one of the user's images."""
    session = bound_session(request)
    record = await ImageDAL(app_state(request, "db_initializer")).get_for_user(image_id, session.user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    cache: SignedUrlCache = app_state(request, "url_cache")
    try:
        url = await cache.get_display_url(record.storage_path)
    except SignedUrlFailed as exc:
        raise to_http_exception(exc) from exc
    return {"id": record.id, "url": url, "expires_in": cache.ttl_seconds}


async def delete_image(request: Request, image_id: int) -> Dict[str, Any]:
    """Delete one of the user's images from storage and the record store."""
    session = bound_session(request)
    notifier = NotificationChannel()
    deleter = ImageDeleter(
        session,
        app_state(request, "object_store"),
        ImageDAL(app_state(request, "db_initializer")),
        url_cache=getattr(request.app.state, "url_cache", None),
    )
    try:
        record = await deleter.delete(image_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Image not found") from exc
    except UploadError as exc:
        notifier.error(exc.message)
        raise to_http_exception(exc, notifier.as_dicts()) from exc
    notifier.success("Image deleted successfully")
    return {"id": record.id, "deleted": True, "notices": notifier.as_dicts()}


async def run_upload(request: Request, session: UserSession, batch: UploadBatch) -> Dict[str, Any]:
    """Upload `batch` for `session` and return the new records, analyses and counters.

    Raises:
        HTTPException: With the failure message and notices if validation,
            storage, or record insertion fails.
    """
    dal = ImageDAL(app_state(request, "db_initializer"))
    reader = GalleryReader(session, dal)
    await reader.list()

    notifier = NotificationChannel()
    orchestrator = UploadOrchestrator(
        session,
        app_state(request, "object_store"),
        dal,
        getattr(request.app.state, "analyzer", None),
        resizer=app_state(request, "batch_store").resizer,
        notifier=notifier,
        on_refetch=reader.refetch,
    )
    try:
        outcome = await orchestrator.upload(batch, reader.count)
    except UploadError as exc:
        raise to_http_exception(exc, notifier.as_dicts()) from exc

    return {
        "uploaded": [serialize_record(r) for r in outcome.records],
        "analyses": {str(k): serialize_analysis(v) for k, v in outcome.analyses.items()},
        "notices": outcome.notices,
        **reader.quota(),
    }


async def upload_images(request: Request, files: List[UploadFile]) -> Dict[str, Any]:
    """Select and upload `files` in a single request, bypassing the pending batch."""
    session = bound_session(request)
    if not files:
        raise HTTPException(status_code=400, detail="No files provided.")
    pending: List[PendingFile] = []
    for upload in files:
        data = await read_image_bytes(upload)
        pending.append(
            PendingFile(
                name=upload.filename,
                content_type=upload.content_type or "application/octet-stream",
                data=data,
                original_size=len(data),
                new_size=len(data),
                was_compressed=False,
                resized=False,
            )
        )
    batch = UploadBatch(user_id=session.user_id, files=pending)
    return await run_upload(request, session, batch)


async def set_display_order(request: Request, image_id: int, display_order: Optional[int]) -> Dict[str, Any]:
    """Move one of the user's images to a gallery slot (None clears the slot)."""
    session = bound_session(request)
    dal = ImageDAL(app_state(request, "db_initializer"))
    record = await dal.get_for_user(image_id, session.user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    await dal.update(record.id, session.user_id, display_order=display_order)
    record.display_order = display_order
    return serialize_record(record)
