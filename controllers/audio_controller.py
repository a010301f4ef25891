"""Batch upload transcription for clients without a streaming connection."""

from typing import Any, Dict

from fastapi import Request, UploadFile

from controllers.session_controller import get_session_manager
from utils.errors import ProtocolError


async def transcribe_upload(request: Request, audio: UploadFile | None) -> Dict[str, Any]:
    """Transcribe one uploaded chunk and append it to the rolling transcript."""
    manager = get_session_manager(request)
    manager.require_active()
    if audio is None:
        raise ProtocolError("No audio file received")
    audio_bytes = await audio.read()
    text = await manager.transcribe_upload(audio_bytes, audio.content_type)
    return {"text": text}
