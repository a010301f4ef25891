"""Per-connection handling of the streaming audio websocket."""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from services.audio.transcoder import StreamingTranscoder
from services.session_manager import SessionManager
from utils.errors import IllustratorError, ProtocolError, TranscodeError
from utils.media_validation import PCM_PASSTHROUGH, resolve_stream_format, validate_chunk_ms, validate_stream_frame

LOGGER = logging.getLogger(__name__)

# Close code for "try again later": no session or realtime disabled.
CLOSE_UNAVAILABLE = 1013

# PCM waiting for the upstream beyond this is dropped (about 10 s at 24 kHz).
MAX_PENDING_PCM_BYTES = 480_000

_COMMIT = object()


class AudioConnectionHandler:
	"""Demultiplex control and audio frames for one listener connection.

	Text frames are JSON control messages (``start`` / ``commit``). Binary
	frames after ``start`` are audio: raw PCM16 is used as-is, compressed
	containers go through this connection's own ``StreamingTranscoder``.
	Either way the PCM lands in an outbox that a feeder task drains into the
	realtime bridge, so neither the receive loop nor the ffmpeg reader waits
	on the upstream. Commits travel through the same outbox to stay behind
	the audio they finalize. Every failure becomes an ``error`` event; the
	connection stays open.
	"""

	def __init__(self, manager: SessionManager, websocket: WebSocket) -> None:
		self.manager = manager
		self.websocket = websocket
		self.session_id: Optional[str] = None
		self.epoch: Optional[int] = None
		self.format: Optional[str] = None
		self.chunk_ms: Optional[int] = None
		self.transcoder: Optional[StreamingTranscoder] = None
		self._warmup: Optional[asyncio.Task] = None
		self._outbox: asyncio.Queue = asyncio.Queue()
		self._pending_pcm = 0
		self._feeder: Optional[asyncio.Task] = None
		self.dropped_pcm = 0

	async def run(self) -> None:
		"""Accept, serve until disconnect, and always release the transcoder."""
		await self.websocket.accept()
		if not self.manager.active:
			await self._reject("No active session")
			return
		if not self.manager.realtime_enabled:
			await self._reject("Realtime disabled")
			return

		context = self.manager.context
		self.session_id = context.session_id
		self.epoch = context.epoch
		self.manager.hub.subscribe(self.session_id, self.websocket)
		try:
			await self._send(
				{
					"type": "ready",
					"model": self.manager.settings.realtime_model,
					"transcribeModel": self.manager.settings.realtime_transcribe_model,
					"sampleRate": self.manager.settings.sample_rate,
				}
			)
			while True:
				message = await self.websocket.receive()
				if message.get("type") == "websocket.disconnect":
					break
				if not self.manager.is_current(self.epoch):
					await self._send_error("No active session")
					break
				if message.get("bytes") is not None:
					await self.handle_audio(message["bytes"])
				elif message.get("text") is not None:
					await self.handle_control(message["text"])
		except (WebSocketDisconnect, RuntimeError):
			pass
		finally:
			await self.cleanup()

	async def handle_control(self, raw: str) -> None:
		try:
			try:
				payload = json.loads(raw)
			except json.JSONDecodeError as exc:
				raise ProtocolError("Invalid control message", details=str(exc)) from exc
			if not isinstance(payload, dict):
				raise ProtocolError("Invalid control message", details="Control frames must be JSON objects.")
			message_type = payload.get("type")
			if message_type == "start":
				await self._start(payload)
			elif message_type == "commit":
				await self._commit()
			else:
				raise ProtocolError(f"Unsupported control message: {message_type}")
		except IllustratorError as exc:
			await self._send_error(exc)

	async def handle_audio(self, frame: bytes) -> None:
		if not frame:
			return
		try:
			if self.format is None:
				raise ProtocolError("Audio received before start", hint="Send a start control message first.")
			validate_stream_frame(frame)
			if self.format == PCM_PASSTHROUGH:
				self._bridge()
				self._enqueue_pcm(frame)
				return
			transcoder = self._ensure_transcoder()
			await transcoder.write(frame)
		except TranscodeError as exc:
			LOGGER.error("Realtime transcode failed session=%s: %s", self.session_id, exc.message)
			await self._close_transcoder()
			await self._send_error(exc)
		except IllustratorError as exc:
			await self._send_error(exc)

	async def cleanup(self) -> None:
		if self.session_id is not None:
			self.manager.hub.unsubscribe(self.session_id, self.websocket)
		await self._close_transcoder()
		for attr in ("_warmup", "_feeder"):
			task = getattr(self, attr)
			setattr(self, attr, None)
			if task is not None and not task.done():
				task.cancel()
				with contextlib.suppress(asyncio.CancelledError):
					await task

	async def _start(self, payload: Dict[str, Any]) -> None:
		audio_format = resolve_stream_format(payload.get("format") or payload.get("mime"))
		self.chunk_ms = validate_chunk_ms(payload.get("chunkMs"))
		if audio_format != self.format:
			await self._close_transcoder()
		self.format = audio_format
		LOGGER.info("Audio stream negotiated session=%s format=%s chunk_ms=%s", self.session_id, self.format, self.chunk_ms)
		await self._send({"type": "ack", "message": "start"})
		bridge = self._bridge()
		if self._warmup is None or self._warmup.done():
			self._warmup = asyncio.create_task(bridge.connect_in_background())

	async def _commit(self) -> None:
		self._bridge()
		self._outbox.put_nowait(_COMMIT)
		self._ensure_feeder()

	def _enqueue_pcm(self, pcm: bytes) -> None:
		"""Queue PCM for the upstream without waiting; drop it when the backlog is full."""
		if self._pending_pcm + len(pcm) > MAX_PENDING_PCM_BYTES:
			if not self.dropped_pcm:
				LOGGER.warning("Upstream backlog full, dropping audio session=%s", self.session_id)
			self.dropped_pcm += len(pcm)
			return
		self._pending_pcm += len(pcm)
		self._outbox.put_nowait(pcm)
		self._ensure_feeder()

	def _ensure_feeder(self) -> None:
		if self._feeder is None or self._feeder.done():
			self._feeder = asyncio.create_task(self._feed_upstream())

	async def _feed_upstream(self) -> None:
		while True:
			item = await self._outbox.get()
			try:
				if item is _COMMIT:
					await self._bridge().commit()
					await self._send({"type": "ack", "message": "commit"})
					continue
				try:
					delivered = await self._bridge().append_audio(item)
				finally:
					self._pending_pcm -= len(item)
				if delivered and self.dropped_pcm:
					LOGGER.info("Upstream caught up session=%s dropped_bytes=%s", self.session_id, self.dropped_pcm)
					self.dropped_pcm = 0
			except IllustratorError as exc:
				await self._send_error(exc)

	def _bridge(self):
		bridge = self.manager.bridge
		if bridge is None or not self.manager.is_current(self.epoch):
			raise ProtocolError("No active session", hint="Start a session first.")
		return bridge

	def _ensure_transcoder(self) -> StreamingTranscoder:
		if self.transcoder is None:
			self.transcoder = StreamingTranscoder(
				self._forward_pcm,
				container=self.format,
				sample_rate=self.manager.settings.sample_rate,
				ffmpeg_path=self.manager.settings.ffmpeg_path,
			)
		return self.transcoder

	async def _forward_pcm(self, pcm: bytes) -> None:
		self._enqueue_pcm(pcm)

	async def _close_transcoder(self) -> None:
		transcoder, self.transcoder = self.transcoder, None
		if transcoder is not None:
			await transcoder.close()

	async def _reject(self, message: str) -> None:
		await self._send({"type": "error", "message": message})
		with contextlib.suppress(Exception):
			await self.websocket.close(code=CLOSE_UNAVAILABLE, reason=message)

	async def _send_error(self, error: IllustratorError | str) -> None:
		if isinstance(error, IllustratorError):
			payload = {"type": "error", "message": error.message, "code": error.code, "hint": error.hint}
		else:
			payload = {"type": "error", "message": error}
		await self._send(payload)

	async def _send(self, payload: Dict[str, Any]) -> None:
		try:
			await self.websocket.send_text(json.dumps(payload))
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Websocket send failed session=%s: %s", self.session_id, exc)
