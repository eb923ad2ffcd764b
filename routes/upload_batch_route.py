"""FastAPI routes for the pending upload batch."""

from typing import List

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from controllers.batch_controller import clear_batch, commit_batch, get_batch, remove_file, select_files

router = APIRouter(prefix="/api/uploads/batch", tags=["uploads"])


@router.get("")
async def get_batch_route(request: Request):
	try:
		return await get_batch(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("", summary="Select images for upload")
async def select_files_route(request: Request, files: List[UploadFile] = File(...)):
	"""Resize the images and add them to the pending batch."""
	try:
		return await select_files(request, files)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{index}")
async def remove_file_route(request: Request, index: int):
	try:
		return await remove_file(request, index)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("")
async def clear_batch_route(request: Request):
	try:
		return await clear_batch(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/commit", summary="Upload the pending batch")
async def commit_batch_route(request: Request):
	try:
		return await commit_batch(request)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
