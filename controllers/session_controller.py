"""Session lifecycle and status helpers for the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, Request

from services.session_manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
	manager = getattr(request.app.state, "session_manager", None)
	if manager is None:
		raise HTTPException(status_code=500, detail="Session manager unavailable")
	return manager


async def ping(request: Request, api_key: Optional[str]) -> Dict[str, Any]:
	"""Validate an API key against the models endpoint."""
	model = await get_session_manager(request).ping(api_key)
	return {"ok": True, "model": model}


async def start_session(request: Request, api_key: Optional[str], overrides: Mapping[str, Any]) -> Dict[str, Any]:
	"""Reset state and start a new session with the provided config overrides."""
	config = await get_session_manager(request).start(api_key, overrides)
	return {"ok": True, "config": config.to_dict()}


async def end_session(request: Request) -> Dict[str, Any]:
	await get_session_manager(request).end()
	return {"ok": True}


async def update_config(request: Request, patch: Mapping[str, Any]) -> Dict[str, Any]:
	"""Merge a partial config into the live session and return the canonical result."""
	config = await get_session_manager(request).update_config(patch)
	return {"ok": True, "config": config.to_dict()}


async def get_status(request: Request) -> Dict[str, Any]:
	return get_session_manager(request).status()
