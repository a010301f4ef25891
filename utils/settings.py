"""Runtime settings read from ``AII_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class Settings:
    """Process-wide knobs for transcription, realtime and generation.

    Attributes:
        openai_api_key: Fallback credential when a session starts without one.
        transcription_model: Model used by the batch fallback path.
        sample_rate: PCM sample rate produced by ffmpeg and sent upstream.
        enable_polish: Run the short cleanup pass over finalized transcripts.
        realtime_enabled: Accept streaming websocket audio.
        realtime_model: Model used to open the realtime session.
        realtime_transcribe_model: Transcription model inside the realtime session.
        vad_threshold: Server VAD energy threshold (0..1).
        vad_silence_ms: Trailing silence before an utterance is finalized.
        vad_prefix_ms: Leading audio retained before detected speech.
        context_tail_chars: Upper bound for transcript context sent in prompts.
        max_images: Image list cap; oldest entries are evicted beyond it.
        ffmpeg_path: ffmpeg executable.
        audio_debug: Log a hex signature of every uploaded buffer.
        mock_openai: Serve canned OpenAI responses (offline demos and tests);
            realtime and transcript polish are turned off in this mode.
    """

    openai_api_key: Optional[str] = None
    transcription_model: str = "gpt-4o-mini-transcribe"
    sample_rate: int = 24000
    enable_polish: bool = True
    realtime_enabled: bool = True
    realtime_model: str = "gpt-4o-mini-realtime-preview"
    realtime_transcribe_model: str = "gpt-4o-mini-transcribe"
    vad_threshold: float = 0.5
    vad_silence_ms: int = 1200
    vad_prefix_ms: int = 300
    context_tail_chars: int = 800
    max_images: int = 20
    ffmpeg_path: str = "ffmpeg"
    audio_debug: bool = False
    mock_openai: bool = False

    def __post_init__(self) -> None:
        if self.mock_openai:
            self.realtime_enabled = False
            self.enable_polish = False

    @classmethod
    def from_env(cls) -> "Settings":
        transcription_model = os.getenv("AII_TRANSCRIPTION_MODEL") or cls.transcription_model
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            transcription_model=transcription_model,
            sample_rate=_env_int("AII_TRANSCRIPTION_RATE", cls.sample_rate),
            enable_polish=_env_bool("AII_ENABLE_TRANSCRIPT_POLISH", True),
            realtime_enabled=_env_bool("AII_REALTIME_ENABLED", True),
            realtime_model=os.getenv("AII_REALTIME_MODEL") or cls.realtime_model,
            realtime_transcribe_model=os.getenv("AII_REALTIME_TRANSCRIBE_MODEL") or transcription_model,
            vad_threshold=_env_float("AII_REALTIME_VAD_THRESHOLD", cls.vad_threshold),
            vad_silence_ms=_env_int("AII_REALTIME_VAD_SILENCE_MS", cls.vad_silence_ms),
            vad_prefix_ms=_env_int("AII_REALTIME_PREFIX_MS", cls.vad_prefix_ms),
            context_tail_chars=_env_int("AII_CONTEXT_TAIL_CHARS", cls.context_tail_chars),
            max_images=_env_int("AII_MAX_IMAGES", cls.max_images),
            ffmpeg_path=os.getenv("AII_FFMPEG_PATH") or cls.ffmpeg_path,
            audio_debug=_env_bool("AII_AUDIO_DEBUG", False),
            mock_openai=_env_bool("AII_MOCK_OPENAI", False),
        )
