"""Validation helpers for uploaded and streamed audio."""

from typing import Optional

from utils.errors import ProtocolError

MIN_UPLOAD_BYTES = 1024
MAX_UPLOAD_BYTES = 25 * 1024 * 1024
MAX_STREAM_FRAME_BYTES = 1024 * 1024
MIN_CHUNK_MS = 20
MAX_CHUNK_MS = 10_000

PCM_PASSTHROUGH = "pcm16"

# Containers the transcription endpoint accepts without a WAV round-trip.
DIRECT_UPLOAD_EXTS = {"webm", "ogg", "mp3", "wav", "m4a"}

MIME_TO_EXT = {
    "audio/webm": "webm",
    "video/webm": "webm",
    "audio/ogg": "ogg",
    "audio/oga": "ogg",
    "audio/opus": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mpga": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/aac": "aac",
    "audio/flac": "flac",
    "audio/x-flac": "flac",
}

STREAM_CONTAINERS = {"webm", "ogg", "mp3", "wav", "m4a", "mp4", "aac", "flac"}


def normalize_mime(mime_type: Optional[str]) -> str:
    """Strip MIME parameters (``audio/webm;codecs=opus``) and lowercase."""
    mime = (mime_type or "").lower().split(";", 1)[0].strip()
    return mime or "application/octet-stream"


def extension_for_mime(mime_type: Optional[str]) -> Optional[str]:
    """Return the file extension for a MIME type, or None when unknown."""
    return MIME_TO_EXT.get(normalize_mime(mime_type))


def resolve_stream_format(value: Optional[str]) -> str:
    """Map a websocket ``start`` format to ``pcm16`` or a container name.

    Accepts bare container names (``webm``) and MIME types
    (``audio/webm;codecs=opus``).

    Raises:
        ProtocolError: If the format is not recognised.
    """
    raw = (value or "").strip().lower()
    if not raw:
        raise ProtocolError("Audio format is required in the start message.", hint="Send {type: 'start', format: 'webm'}.")
    if raw in {PCM_PASSTHROUGH, "pcm", "s16le"}:
        return PCM_PASSTHROUGH
    if "/" in raw:
        container = extension_for_mime(raw)
    else:
        container = raw
    if container not in STREAM_CONTAINERS:
        raise ProtocolError(
            f"Unsupported audio format: {value}",
            hint="Use pcm16, webm, ogg or mp3.",
        )
    return container


def validate_chunk_ms(value) -> Optional[int]:
    """Return the negotiated chunk duration, rejecting out-of-range values."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError("chunkMs must be a number of milliseconds.")
    if not MIN_CHUNK_MS <= value <= MAX_CHUNK_MS:
        raise ProtocolError(
            f"chunkMs must be between {MIN_CHUNK_MS} and {MAX_CHUNK_MS}.",
            hint="Reduce the recorder chunk size.",
        )
    return int(value)


def validate_stream_frame(frame: bytes) -> None:
    """Reject binary websocket frames larger than the gateway accepts."""
    if len(frame) > MAX_STREAM_FRAME_BYTES:
        raise ProtocolError(
            f"Audio frame too large ({len(frame)} bytes).",
            hint="Reduce the recorder chunk size.",
        )


def validate_upload_size(audio_bytes: Optional[bytes]) -> bytes:
    """Return the upload when its size is usable, before any remote call is made."""
    if not audio_bytes or len(audio_bytes) < MIN_UPLOAD_BYTES:
        raise ProtocolError("Audio chunk too small", details="No usable audio captured")
    if len(audio_bytes) > MAX_UPLOAD_BYTES:
        raise ProtocolError("Audio chunk too large", details="Uploads are limited to 25 MiB; reduce the chunk size.")
    return audio_bytes
