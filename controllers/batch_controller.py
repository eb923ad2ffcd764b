"""Pending upload batch lifecycle: select, inspect, remove, commit."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import HTTPException, Request, UploadFile

from controllers.image_controller import app_state, bound_session, run_upload
from dal.image_dal import ImageDAL
from models.upload_batch import UploadBatch, UploadState
from services.batch_store import BatchStore
from services.gallery_reader import GalleryReader
from services.notifications import NotificationChannel
from utils.media_validation import read_image_bytes


def format_file_size(size: int) -> str:
	"""Return a short human-readable byte size (B, KB, MB)."""
	if size < 1024:
		return f"{size} B"
	if size < 1024 * 1024:
		return f"{size / 1024:.1f} KB"
	return f"{size / (1024 * 1024):.1f} MB"


def describe_batch(batch: UploadBatch) -> Dict[str, Any]:
	return {
		"state": batch.state.value,
		"progress": batch.progress,
		"files": [
			{
				"index": index,
				"name": f.name,
				"content_type": f.content_type,
				"original_size": f.original_size,
				"new_size": f.new_size,
				"was_compressed": f.was_compressed,
			}
			for index, f in enumerate(batch.files)
		],
	}


async def get_batch(request: Request) -> Dict[str, Any]:
	session = bound_session(request)
	store: BatchStore = app_state(request, "batch_store")
	return describe_batch(store.get(session.user_id))


async def select_files(request: Request, files: List[UploadFile]) -> Dict[str, Any]:
	"""Resize and queue files, keeping only as many as the quota leaves room for."""
	session = bound_session(request)
	store: BatchStore = app_state(request, "batch_store")
	if store.is_busy(session.user_id):
		raise HTTPException(status_code=409, detail="Upload already in progress.")

	reader = GalleryReader(session, ImageDAL(app_state(request, "db_initializer")))
	await reader.list()

	raw = [(await read_image_bytes(f), f.filename, f.content_type) for f in files]
	try:
		batch, added = await store.select(session.user_id, raw, reader.remaining)
	except RuntimeError as exc:
		raise HTTPException(status_code=409, detail=str(exc)) from exc

	notifier = NotificationChannel()
	if len(added) < len(raw):
		notifier.error(f"Only {len(added)} of {len(raw)} image(s) were added; you can upload {reader.remaining} more image(s)")
	compressed = [f for f in added if f.was_compressed]
	if compressed:
		saved = sum(f.original_size - f.new_size for f in compressed)
		notifier.success(f"Compressed {len(compressed)} image(s), saved {format_file_size(saved)}")
	return {**describe_batch(batch), "notices": notifier.as_dicts()}


async def remove_file(request: Request, index: int) -> Dict[str, Any]:
	session = bound_session(request)
	store: BatchStore = app_state(request, "batch_store")
	try:
		store.remove(session.user_id, index)
	except IndexError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc
	except RuntimeError as exc:
		raise HTTPException(status_code=409, detail=str(exc)) from exc
	return describe_batch(store.get(session.user_id))


async def clear_batch(request: Request) -> Dict[str, Any]:
	session = bound_session(request)
	store: BatchStore = app_state(request, "batch_store")
	if store.is_busy(session.user_id):
		raise HTTPException(status_code=409, detail="Upload already in progress.")
	store.clear(session.user_id)
	return {"cleared": True}


async def commit_batch(request: Request) -> Dict[str, Any]:
	"""Upload every queued file; on failure the files after the failed one stay queued."""
	session = bound_session(request)
	store: BatchStore = app_state(request, "batch_store")
	if store.is_busy(session.user_id):
		raise HTTPException(status_code=409, detail="Upload already in progress.")
	batch = store.get(session.user_id)
	if not batch.files:
		raise HTTPException(status_code=400, detail="No files selected for upload.")

	batch.state = UploadState.VALIDATING
	try:
		result = await run_upload(request, session, batch)
	finally:
		if batch.state not in (UploadState.DONE, UploadState.ERROR):
			batch.state = UploadState.IDLE
	store.clear(session.user_id)
	return result
