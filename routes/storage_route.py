"""Serve private objects to holders of a valid signed URL."""

import mimetypes
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from services.object_store import ObjectNotFoundError

router = APIRouter(tags=["storage"])


@router.get("/storage/{key:path}", include_in_schema=False)
async def read_object_route(request: Request, key: str, expires: int = 0, signature: Optional[str] = None):
	"""Return the object bytes if the signature is valid and unexpired."""
	store = getattr(request.app.state, "object_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="object_store not initialized.")
	try:
		if not store.verify(key, expires, signature):
			raise HTTPException(status_code=403, detail="Invalid or expired signature")
		data = await store.download(key)
	except HTTPException:
		raise
	except ObjectNotFoundError as exc:
		raise HTTPException(status_code=404, detail="Object not found") from exc
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
	media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
	return Response(content=data, media_type=media_type, headers={"Cache-Control": "private, max-age=3600"})
