"""Generation trigger, image mutation and export helpers."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from controllers.session_controller import get_session_manager
from services.export import EXPORT_FILENAME


async def trigger_generation(request: Request):
	"""Run (or queue) the generation pipeline.

	Returns the new image, a ``queued`` marker, or raises the stage error so
	the application error handler renders it.
	"""
	result = await get_session_manager(request).generate("manual")
	if result.error is not None:
		raise result.error
	if result.discarded:
		return JSONResponse(status_code=409, content=result.to_dict())
	return result.to_dict()


def set_pinned(request: Request, image_id: str, pinned: Optional[bool]) -> Dict[str, Any]:
	image = get_session_manager(request).set_pinned(image_id, pinned)
	return {"ok": True, "image": image.to_dict()}


def delete_image(request: Request, image_id: str) -> Dict[str, Any]:
	get_session_manager(request).delete_image(image_id)
	return {"ok": True}


def export_session(request: Request) -> Response:
	"""Return the session prompts and last summary as a markdown attachment."""
	content = get_session_manager(request).export_markdown()
	return Response(
		content=content,
		media_type="text/markdown",
		headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
	)
