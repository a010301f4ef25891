from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.generation_controller import delete_image, set_pinned
from utils.errors import IllustratorError

router = APIRouter(prefix="/api")


class ImagePatch(BaseModel):
	pinned: Optional[bool] = None


@router.patch("/images/{image_id}")
async def patch_image(request: Request, image_id: str, payload: ImagePatch):
	"""Pin or unpin an image; repeating the same value is a no-op."""
	try:
		return set_pinned(request, image_id, payload.pinned)
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/images/{image_id}")
async def delete_image_route(request: Request, image_id: str):
	"""Soft-delete an image; it stays in the session but is hidden from status."""
	try:
		return delete_image(request, image_id)
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
