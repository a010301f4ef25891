"""ffmpeg-backed decoding of compressed audio into mono 16-bit PCM.

Two modes are offered:

- ``StreamingTranscoder`` keeps one ffmpeg process per websocket connection,
  accepts incremental writes and forwards decoded PCM as soon as ffmpeg emits
  it. Browser recorders slice a continuous stream into independent chunks,
  so corrupt boundary frames are discarded instead of aborting the decoder.
- ``transcode_once`` converts a complete buffer in one call and is used by
  the batch fallback path.
"""

from __future__ import annotations

import asyncio
import asyncio.subprocess as aio_subprocess
import contextlib
import logging
from typing import Awaitable, Callable, List, Optional

from utils.errors import TranscodeError

LOGGER = logging.getLogger(__name__)

READ_CHUNK_BYTES = 4096
CLOSE_TIMEOUT_SECONDS = 2.0

# ffmpeg cannot always sniff these from a pipe, so the demuxer is forced.
_FORCED_DEMUXERS = {"webm": "webm", "ogg": "ogg", "mp3": "mp3"}

PcmCallback = Callable[[bytes], Awaitable[None]]


def input_format_flags(container: Optional[str]) -> List[str]:
    """Return ``-f <demuxer>`` for containers ffmpeg cannot detect from a pipe."""
    demuxer = _FORCED_DEMUXERS.get((container or "").lower())
    return ["-f", demuxer] if demuxer else []


def build_pcm_command(ffmpeg_path: str, container: Optional[str], sample_rate: int, *, tolerant: bool) -> List[str]:
    """Return the argv decoding stdin into mono s16le PCM on stdout."""
    args = [ffmpeg_path, "-hide_banner", "-loglevel", "error"]
    if tolerant:
        args.extend(["-fflags", "+discardcorrupt", "-err_detect", "ignore_err"])
    args.extend(input_format_flags(container))
    args.extend(["-i", "pipe:0", "-vn", "-ac", "1", "-ar", str(sample_rate), "-f", "s16le", "pipe:1"])
    return args


def build_wav_command(ffmpeg_path: str, sample_rate: int) -> List[str]:
    """Return the argv re-encoding stdin into a canonical mono WAV on stdout."""
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        "pipe:0",
        "-map_metadata",
        "-1",
        "-vn",
        "-ac",
        "1",
        "-ar",
        str(sample_rate),
        "-f",
        "wav",
        "pipe:1",
    ]


async def _spawn(args: List[str]) -> aio_subprocess.Process:
    try:
        return await aio_subprocess.create_subprocess_exec(
            *args,
            stdin=aio_subprocess.PIPE,
            stdout=aio_subprocess.PIPE,
            stderr=aio_subprocess.PIPE,
        )
    except OSError as exc:
        raise TranscodeError(f"ffmpeg not available: {exc}", stderr=str(exc)) from exc


async def transcode_once(
    audio: bytes,
    *,
    container: Optional[str] = None,
    sample_rate: int = 24000,
    output: str = "s16le",
    ffmpeg_path: str = "ffmpeg",
) -> bytes:
    """Convert a complete buffer and return the full output.

    Args:
        audio: Compressed input bytes.
        container: Optional container hint (``webm``, ``ogg``...).
        sample_rate: Output sample rate.
        output: ``s16le`` for raw PCM or ``wav`` for a WAV container.
        ffmpeg_path: ffmpeg executable.

    Raises:
        TranscodeError: If ffmpeg cannot start or exits non-zero.
    """
    if output == "wav":
        args = build_wav_command(ffmpeg_path, sample_rate)
    elif output == "s16le":
        args = build_pcm_command(ffmpeg_path, container, sample_rate, tolerant=True)
    else:
        raise ValueError(f"Unsupported transcode output: {output}")

    process = await _spawn(args)
    stdout, stderr = await process.communicate(audio)
    if process.returncode != 0:
        message = stderr.decode(errors="ignore").strip()
        raise TranscodeError(f"ffmpeg exit {process.returncode}: {message}", stderr=message)
    return stdout


class StreamingTranscoder:
    """Long-lived ffmpeg process fed incrementally from one connection.

    ffmpeg is spawned lazily on the first ``write``. A reader task drains
    stdout continuously (ffmpeg blocks once its pipe fills) and hands whole
    16-bit frames to ``on_pcm``. ``close`` is idempotent and always reaps the
    process.
    """

    def __init__(
        self,
        on_pcm: PcmCallback,
        *,
        container: Optional[str] = None,
        sample_rate: int = 24000,
        ffmpeg_path: str = "ffmpeg",
    ) -> None:
        self.on_pcm = on_pcm
        self.container = container
        self.sample_rate = sample_rate
        self.ffmpeg_path = ffmpeg_path
        self.process: Optional[aio_subprocess.Process] = None
        self.stdout_task: Optional[asyncio.Task] = None
        self.stderr_task: Optional[asyncio.Task] = None
        self.bytes_in = 0
        self.bytes_out = 0
        self._stderr_lines: List[str] = []
        self._closed = False

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None and not self._closed

    @property
    def stderr_text(self) -> str:
        return "\n".join(self._stderr_lines)

    async def start(self) -> None:
        if self.process is not None:
            return
        if self._closed:
            raise TranscodeError("Transcoder already closed")
        args = build_pcm_command(self.ffmpeg_path, self.container, self.sample_rate, tolerant=True)
        self.process = await _spawn(args)
        self.stdout_task = asyncio.create_task(self._read_stdout())
        self.stderr_task = asyncio.create_task(self._read_stderr())
        LOGGER.info("Streaming transcoder started container=%s rate=%s", self.container, self.sample_rate)

    async def write(self, data: bytes) -> None:
        """Feed compressed bytes to ffmpeg, starting it if needed.

        Raises:
            TranscodeError: If ffmpeg is gone or its stdin is closed.
        """
        if not data:
            return
        await self.start()
        if self.process is None or self.process.stdin is None:
            raise TranscodeError("ffmpeg stdin unavailable", stderr=self.stderr_text)
        if self.process.returncode is not None:
            raise TranscodeError(f"ffmpeg exit {self.process.returncode}: {self.stderr_text}", stderr=self.stderr_text)
        try:
            self.process.stdin.write(data)
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise TranscodeError(f"ffmpeg stdin write failed: {exc}", stderr=self.stderr_text) from exc
        self.bytes_in += len(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        process = self.process
        if process is None:
            return

        if process.stdin is not None and not process.stdin.is_closing():
            with contextlib.suppress(BrokenPipeError, ConnectionResetError, AttributeError):
                process.stdin.write_eof()
            with contextlib.suppress(Exception):
                process.stdin.close()

        try:
            await asyncio.wait_for(process.wait(), timeout=CLOSE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

        for task in (self.stdout_task, self.stderr_task):
            if task is None:
                continue
            if not task.done():
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        LOGGER.info(
            "Streaming transcoder closed code=%s bytes_in=%s bytes_out=%s",
            process.returncode,
            self.bytes_in,
            self.bytes_out,
        )

    async def __aenter__(self) -> "StreamingTranscoder":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _read_stdout(self) -> None:
        assert self.process is not None and self.process.stdout is not None
        remainder = b""
        while True:
            chunk = await self.process.stdout.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            if remainder:
                chunk = remainder + chunk
                remainder = b""
            # Only whole 16-bit samples are forwarded.
            if len(chunk) % 2:
                remainder = chunk[-1:]
                chunk = chunk[:-1]
            if not chunk:
                continue
            self.bytes_out += len(chunk)
            try:
                await self.on_pcm(chunk)
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.exception("PCM consumer failed; continuing to drain ffmpeg")

    async def _read_stderr(self) -> None:
        assert self.process is not None and self.process.stderr is not None
        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            text = line.decode(errors="ignore").strip()
            if text:
                self._stderr_lines = (self._stderr_lines + [text])[-20:]
                LOGGER.warning("ffmpeg stderr: %s", text)
