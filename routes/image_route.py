from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from controllers.image_controller import delete_image, get_display_url, list_images, set_display_order, upload_images

router = APIRouter(prefix="/api/images", tags=["images"])


class DisplayOrderPayload(BaseModel):
	display_order: Optional[int] = Field(default=None, ge=0)


@router.get("")
async def list_images_route(request: Request):
	"""Return the user's images in gallery order with quota counters."""
	try:
		return await list_images(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("", summary="Upload images and analyze them")
async def upload_images_route(request: Request, files: List[UploadFile] = File(...)):
	"""Resize, store, record and analyze the uploaded images in one call."""
	try:
		return await upload_images(request, files)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{image_id}/url")
async def get_image_url_route(request: Request, image_id: int):
	"""Return a one-hour viewing URL for the image."""
	try:
		return await get_display_url(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{image_id}")
async def delete_image_route(request: Request, image_id: int):
	try:
		return await delete_image(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.patch("/{image_id}")
async def set_display_order_route(request: Request, image_id: int, payload: DisplayOrderPayload):
	"""Set or clear the image's gallery slot."""
	try:
		return await set_display_order(request, image_id, payload.display_order)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
