"""WebSocket endpoint for streaming microphone audio."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket

from services.realtime.ws_audio import AudioConnectionHandler

router = APIRouter()


@router.websocket("/ws/audio")
async def audio_socket(websocket: WebSocket):
	"""Stream audio into the session's realtime transcription and receive live transcript events."""
	handler = AudioConnectionHandler(websocket.app.state.session_manager, websocket)
	await handler.run()
