"""FastAPI routes for session lifecycle, configuration and status."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from controllers.session_controller import end_session, get_status, ping, start_session, update_config
from utils.errors import IllustratorError

router = APIRouter(prefix="/api")


class ConfigPayload(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	summarization_window_minutes: Optional[float] = None
	transcript_window_minutes: Optional[float] = None
	phase: Optional[str] = None
	language_mode: Optional[str] = None
	workshop_type: Optional[str] = None
	auto_interval_minutes: Optional[float] = None
	auto_generate: Optional[bool] = None
	image_size: Optional[str] = None
	style_preset: Optional[str] = None

	def patch(self) -> dict:
		return self.model_dump(exclude_none=True, exclude={"api_key"})


class StartPayload(ConfigPayload):
	api_key: Optional[str] = None


class PingPayload(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	api_key: Optional[str] = None


@router.post("/ping")
async def ping_route(request: Request, payload: Optional[PingPayload] = None):
	try:
		return await ping(request, payload.api_key if payload else None)
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/start")
async def start_session_route(request: Request, payload: Optional[StartPayload] = None):
	payload = payload or StartPayload()
	try:
		return await start_session(request, payload.api_key, payload.patch())
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/session/end")
async def end_session_route(request: Request):
	try:
		return await end_session(request)
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/config")
async def update_config_route(request: Request, payload: ConfigPayload):
	try:
		return await update_config(request, payload.patch())
	except (HTTPException, IllustratorError):
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/status")
async def status_route(request: Request):
	return await get_status(request)
