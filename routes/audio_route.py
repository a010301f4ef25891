"""FastAPI route for the batch transcription fallback."""

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from controllers.audio_controller import transcribe_upload
from utils.errors import IllustratorError

router = APIRouter(prefix="/api")


@router.post("/audio")
async def upload_audio_route(request: Request, audio: UploadFile | None = File(None)):
    """Transcribe one recorded chunk when the streaming connection is unavailable."""
    try:
        return await transcribe_upload(request, audio)
    except (HTTPException, IllustratorError):
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc
