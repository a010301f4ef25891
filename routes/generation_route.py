"""FastAPI routes for generation and export."""

from fastapi import APIRouter, HTTPException, Request

from controllers.generation_controller import export_session, trigger_generation
from utils.errors import IllustratorError

router = APIRouter(prefix="/api")


@router.post("/generate")
async def generate_route(request: Request):
	"""Run the pipeline now, or queue one rerun if a run is already in flight."""
	try:
		return await trigger_generation(request)
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/export")
async def export_route(request: Request):
	"""Download prompts and the last summary as markdown."""
	try:
		return export_session(request)
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
