"""Error taxonomy shared by the HTTP routes, websocket gateway and services.

Every error carries the HTTP status it maps to, a stable machine code and a
short hint telling the operator what to do next. The FastAPI exception
handler in ``main`` renders them as ``{"error", "details", "code"}``.
"""

from typing import Any, Dict, Optional


class IllustratorError(Exception):
    """Base class for all service errors."""

    status_code = 500
    code = "INTERNAL_ERROR"
    hint = "Retry the request."

    def __init__(self, message: str, *, details: Optional[str] = None, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if hint is not None:
            self.hint = hint

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON body used for HTTP and websocket error responses."""
        return {
            "error": self.message,
            "details": self.details or self.hint,
            "code": self.code,
        }


class CredentialError(IllustratorError):
    """Missing or rejected OpenAI API key."""

    status_code = 400
    code = "CREDENTIAL_ERROR"
    hint = "Re-enter a valid OpenAI API key."


class NoActiveSessionError(IllustratorError):
    """The request needs a running session."""

    status_code = 400
    code = "NO_ACTIVE_SESSION"
    hint = "Start a session first."

    def __init__(self, message: str = "No active session", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class TranscodeError(IllustratorError):
    """ffmpeg could not be spawned or exited with a non-zero status."""

    status_code = 500
    code = "TRANSCODE_ERROR"
    hint = "Check that ffmpeg is installed, or switch the recorder to another audio format."

    def __init__(self, message: str, *, stderr: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.stderr = stderr


class RecognitionError(IllustratorError):
    """Speech-to-text failed upstream."""

    status_code = 500
    code = "TRANSCRIPTION_ERROR"
    hint = "If repeated, inspect the browser audio format and consider an OGG fallback."


class PipelineStageError(IllustratorError):
    """One of summarize / prompt / render failed; the run is aborted."""

    status_code = 400
    code = "GENERATION_ERROR"
    hint = "Trigger generation again once more discussion has been captured."

    def __init__(self, stage: str, message: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage


class ProtocolError(IllustratorError):
    """Malformed control message, unknown container or bad payload size."""

    status_code = 400
    code = "PROTOCOL_ERROR"
    hint = "Check the request format."


class ImageNotFoundError(IllustratorError):
    status_code = 404
    code = "IMAGE_NOT_FOUND"
    hint = "Refresh the gallery; the image may belong to a previous session."

    def __init__(self, image_id: str) -> None:
        super().__init__("Image not found", details=f"No image with id {image_id}")
        self.image_id = image_id


class NothingToExportError(IllustratorError):
    status_code = 400
    code = "NOTHING_TO_EXPORT"
    hint = "Generate at least one image before exporting."

    def __init__(self) -> None:
        super().__init__("Nothing to export")
