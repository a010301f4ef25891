"""One-shot transcription of uploaded audio chunks with a WAV fallback."""

from __future__ import annotations

import io
import logging
import os
from typing import Awaitable, Callable, Optional

from openai import AsyncOpenAI

from services.audio.transcoder import transcode_once
from utils.errors import RecognitionError, TranscodeError
from utils.media_validation import DIRECT_UPLOAD_EXTS, extension_for_mime, normalize_mime

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = os.getenv("AII_TRANSCRIPTION_MODEL", "gpt-4o-mini-transcribe")

WavConverter = Callable[[bytes], Awaitable[bytes]]


class BatchTranscriber:
    """Transcribe a complete audio buffer, retrying through ffmpeg when needed.

    Known containers are uploaded as-is first. If that fails, or the
    container is unrecognised, the buffer is re-encoded to WAV and sent
    again. If re-encoding itself fails, the original bytes get one last try.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = DEFAULT_MODEL,
        sample_rate: int = 24000,
        ffmpeg_path: str = "ffmpeg",
        wav_converter: Optional[WavConverter] = None,
        audio_debug: bool = False,
    ) -> None:
        if client is None:
            raise ValueError("OpenAI client is required for transcription.")
        self.client = client
        self.model = model
        self.sample_rate = sample_rate
        self.ffmpeg_path = ffmpeg_path
        self.wav_converter = wav_converter or self._convert_to_wav
        self.audio_debug = audio_debug

    async def transcribe(
        self,
        audio_bytes: bytes,
        mime_type: Optional[str],
        *,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> str:
        """Return the raw transcript text for an uploaded chunk.

        Raises:
            RecognitionError: When every attempt failed.
        """
        if not audio_bytes:
            raise ValueError("audio_bytes must contain data for transcription.")

        mime = normalize_mime(mime_type)
        ext = extension_for_mime(mime)
        if self.audio_debug:
            LOGGER.info("Audio buffer signature head=%s size=%s mime=%s", audio_bytes[:16].hex(), len(audio_bytes), mime)

        last_error: Optional[Exception] = None

        if ext in DIRECT_UPLOAD_EXTS:
            try:
                return await self._call_model(audio_bytes, f"audio.{ext}", language, prompt)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                last_error = exc
                LOGGER.error("Direct transcription failed, retrying with WAV: %s mime=%s ext=%s", exc, mime, ext)

        payload, filename = audio_bytes, f"audio.{ext or 'webm'}"
        try:
            payload = await self.wav_converter(audio_bytes)
            filename = "audio.wav"
            LOGGER.info("Audio converted to wav mime=%s wav_bytes=%s rate=%s", mime, len(payload), self.sample_rate)
        except TranscodeError as exc:
            last_error = exc
            LOGGER.error("Audio conversion failed, falling back to original buffer: %s mime=%s", exc, mime)

        try:
            return await self._call_model(payload, filename, language, prompt)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            last_error = exc
            LOGGER.error("WAV transcription retry failed: %s mime=%s", exc, mime)

        raise RecognitionError("Transcription failed", details=str(last_error)) from last_error

    async def _convert_to_wav(self, audio_bytes: bytes) -> bytes:
        return await transcode_once(
            audio_bytes,
            sample_rate=self.sample_rate,
            output="wav",
            ffmpeg_path=self.ffmpeg_path,
        )

    async def _call_model(
        self,
        audio_bytes: bytes,
        filename: str,
        language: Optional[str],
        prompt: Optional[str],
    ) -> str:
        audio_file = io.BytesIO(audio_bytes)
        audio_file.name = filename

        kwargs = {"model": self.model, "file": audio_file, "temperature": 0}
        if language:
            kwargs["language"] = language
        if prompt:
            kwargs["prompt"] = prompt

        response = await self.client.audio.transcriptions.create(**kwargs)
        return (getattr(response, "text", None) or "").strip()
