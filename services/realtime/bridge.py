"""Bridge between local audio listeners and one upstream realtime transcription session."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from openai import AsyncOpenAI

from models.session_models import RealtimeStatus, SessionContext
from models.transcript_store import TranscriptEntry
from services.openai.prompts import transcription_prompt
from services.openai.response_parser import event_field, event_type
from services.openai.transcript_polish import TranscriptPolisher
from services.realtime.listeners import ListenerHub
from utils.errors import RecognitionError
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

EVENT_DELTA = "conversation.item.input_audio_transcription.delta"
EVENT_COMPLETED = "conversation.item.input_audio_transcription.completed"
EVENT_FAILED = "conversation.item.input_audio_transcription.failed"
EVENT_SEGMENT = "conversation.item.input_audio_transcription.segment"

# Reconnect delay after a failed upstream open doubles up to the cap.
RECONNECT_BASE_SECONDS = 1.0
RECONNECT_MAX_SECONDS = 30.0

Connector = Callable[[], Awaitable[Any]]


def build_session_config(context: SessionContext, settings: Settings) -> Dict[str, Any]:
	"""Return the ``session.update`` payload for a transcription-only session."""
	config = context.config
	transcription: Dict[str, Any] = {
		"model": settings.realtime_transcribe_model,
		"prompt": transcription_prompt(config, context.transcripts.context_tail(settings.context_tail_chars)),
	}
	if config.language_hint:
		transcription["language"] = config.language_hint
	return {
		"modalities": ["text"],
		"input_audio_format": "pcm16",
		"input_audio_noise_reduction": {"type": "far_field"},
		"input_audio_transcription": transcription,
		"turn_detection": {
			"type": "server_vad",
			"threshold": settings.vad_threshold,
			"silence_duration_ms": settings.vad_silence_ms,
			"prefix_padding_ms": settings.vad_prefix_ms,
			"create_response": False,
		},
	}


class RealtimeTranscriptionBridge:
	"""Own the single upstream recognition session of one local session.

	The upstream is opened lazily (or eagerly by ``connect_in_background``),
	shared by every listener connection, and fed base64 PCM. Upstream events
	are fanned out through the ``ListenerHub``; only finalized, sanitized text
	reaches the transcript store. Events that arrive after the session epoch
	moved on are dropped.

	Finalization (polish, store, broadcast) runs in its own task so a slow
	cleanup call never holds back later deltas. A failed open starts a
	backoff window during which audio is dropped instead of re-dialling.
	"""

	def __init__(
		self,
		client: AsyncOpenAI,
		context: SessionContext,
		hub: ListenerHub,
		*,
		settings: Settings,
		polisher: TranscriptPolisher,
		is_current: Callable[[int], bool],
		connector: Optional[Connector] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.client = client
		self.context = context
		self.hub = hub
		self.settings = settings
		self.polisher = polisher
		self._is_current = is_current
		self._connector = connector or self._open_upstream
		self._epoch = context.epoch
		self._lock = asyncio.Lock()
		self._reader_task: Optional[asyncio.Task] = None
		self._finalizers: Set[asyncio.Task] = set()
		self._closed = False
		self._clock = clock
		self._failures = 0
		self._retry_at = 0.0
		self.connect_attempts = 0

	@property
	def status(self) -> RealtimeStatus:
		return self.context.realtime.status

	@property
	def connected(self) -> bool:
		return self.context.realtime.upstream is not None

	async def _open_upstream(self) -> Any:
		manager = self.client.beta.realtime.connect(model=self.settings.realtime_model)
		return await manager.enter()

	def _stale(self) -> bool:
		return self._closed or not self._is_current(self._epoch)

	@property
	def backing_off(self) -> bool:
		return self._failures > 0 and self._clock() < self._retry_at

	async def ensure_connected(self) -> Optional[Any]:
		"""Return the open upstream connection, opening it on first need.

		Returns None while realtime is disabled, the session is over, or a
		previous failure is still inside its backoff window.

		Raises:
			RecognitionError: If the upstream session cannot be opened.
		"""
		if not self.settings.realtime_enabled:
			return None
		state = self.context.realtime
		if state.upstream is not None:
			return state.upstream
		if self.backing_off:
			return None
		async with self._lock:
			if state.upstream is not None:
				return state.upstream
			if self._stale() or self.backing_off:
				return None
			state.status = RealtimeStatus.CONNECTING
			self.connect_attempts += 1
			try:
				connection = await self._connector()
				await connection.session.update(session=build_session_config(self.context, self.settings))
			except Exception as exc:  # pylint: disable=broad-exception-caught
				self._failures += 1
				delay = min(RECONNECT_BASE_SECONDS * 2 ** (self._failures - 1), RECONNECT_MAX_SECONDS)
				self._retry_at = self._clock() + delay
				state.status = RealtimeStatus.ERROR
				state.last_error = str(exc)
				LOGGER.error("Realtime upstream init failed attempt=%s retry_in=%.1fs: %s", self._failures, delay, exc)
				raise RecognitionError("Realtime transcription unavailable", details=str(exc)) from exc
			self._failures = 0
			self._retry_at = 0.0

			if self._stale():
				with contextlib.suppress(Exception):
					await connection.close()
				LOGGER.info("Discarding realtime upstream opened for a finished session")
				return None

			state.upstream = connection
			state.status = RealtimeStatus.CONNECTED
			state.last_error = None
			self._reader_task = asyncio.create_task(self._consume(connection))
			LOGGER.info(
				"Realtime upstream connected model=%s transcribe_model=%s",
				self.settings.realtime_model,
				self.settings.realtime_transcribe_model,
			)
			return connection

	async def connect_in_background(self) -> None:
		"""Open the upstream without surfacing failures to the caller."""
		try:
			await self.ensure_connected()
		except RecognitionError as exc:
			LOGGER.debug("Background realtime connect failed: %s", exc.details)

	async def append_audio(self, pcm: bytes) -> bool:
		"""Forward PCM16 audio upstream; return False when realtime is unavailable."""
		if not pcm:
			return False
		connection = await self.ensure_connected()
		if connection is None:
			return False
		try:
			await connection.input_audio_buffer.append(audio=base64.b64encode(pcm).decode("ascii"))
		except Exception as exc:  # pylint: disable=broad-exception-caught
			self.context.realtime.status = RealtimeStatus.ERROR
			self.context.realtime.last_error = str(exc)
			LOGGER.error("Realtime audio append failed bytes=%s: %s", len(pcm), exc)
			raise RecognitionError("Realtime audio append failed", details=str(exc)) from exc
		return True

	async def commit(self) -> bool:
		"""Ask the upstream to finalize whatever audio it has buffered."""
		connection = await self.ensure_connected()
		if connection is None:
			return False
		try:
			await connection.input_audio_buffer.commit()
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Realtime commit failed: %s", exc)
			raise RecognitionError("Realtime commit failed", details=str(exc)) from exc
		return True

	async def refresh_config(self) -> bool:
		"""Push language and vocabulary changes to an open upstream without reconnecting."""
		connection = self.context.realtime.upstream
		if connection is None or self._stale():
			return False
		try:
			await connection.session.update(session=build_session_config(self.context, self.settings))
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Failed to refresh realtime session config: %s", exc)
			return False
		LOGGER.info("Realtime session config refreshed language=%s", self.context.config.language_mode)
		return True

	async def close(self, reason: str = "session reset") -> None:
		"""Disconnect the upstream and stop reading its events."""
		self._closed = True
		state = self.context.realtime
		connection, state.upstream = state.upstream, None
		task, self._reader_task = self._reader_task, None
		pending = [t for t in (task, *self._finalizers) if t is not None and not t.done()]
		self._finalizers.clear()
		for pending_task in pending:
			pending_task.cancel()
		for pending_task in pending:
			with contextlib.suppress(asyncio.CancelledError, Exception):
				await pending_task
		if connection is not None:
			try:
				await connection.close()
			except Exception as exc:  # pylint: disable=broad-exception-caught
				LOGGER.error("Failed to close realtime upstream: %s", exc)
			LOGGER.info("Realtime upstream closed reason=%s", reason)
		state.status = RealtimeStatus.DISCONNECTED

	async def _consume(self, connection: Any) -> None:
		state = self.context.realtime
		try:
			async for event in connection:
				try:
					await self.handle_event(event)
				except Exception:  # pylint: disable=broad-exception-caught
					LOGGER.exception("Realtime event handler failed")
		except asyncio.CancelledError:
			raise
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Realtime upstream error: %s", exc)
			if not self._stale():
				state.status = RealtimeStatus.ERROR
				state.last_error = str(exc)
		else:
			if not self._stale():
				state.status = RealtimeStatus.DISCONNECTED
			LOGGER.info("Realtime upstream stream ended")
		finally:
			if state.upstream is connection:
				state.upstream = None

	async def handle_event(self, event: Any) -> None:
		"""Dispatch one upstream server event."""
		if self._stale():
			return
		kind = event_type(event)
		session_id = self.context.session_id
		if kind == EVENT_DELTA:
			delta = event_field(event, "delta")
			if delta:
				await self.hub.broadcast(
					session_id,
					{"type": "transcript_delta", "itemId": event_field(event, "item_id"), "delta": delta},
				)
		elif kind == EVENT_SEGMENT:
			text = event_field(event, "text")
			if text:
				await self.hub.broadcast(
					session_id,
					{
						"type": "transcript_segment",
						"itemId": event_field(event, "item_id"),
						"text": text,
						"start": event_field(event, "start"),
						"end": event_field(event, "end"),
					},
				)
		elif kind == EVENT_COMPLETED:
			task = asyncio.create_task(
				self._finalize(event_field(event, "transcript", ""), event_field(event, "item_id"))
			)
			self._finalizers.add(task)
			task.add_done_callback(self._finalizer_done)
		elif kind == EVENT_FAILED:
			message = event_field(event, "error.message") or "Transcription failed"
			LOGGER.error("Realtime transcription failed: %s code=%s", message, event_field(event, "error.code"))
			await self.hub.broadcast(session_id, {"type": "transcript_error", "message": message})
		elif kind == "error":
			message = event_field(event, "error.message") or "Realtime upstream error"
			LOGGER.error("Realtime upstream reported error: %s", message)
			await self.hub.broadcast(session_id, {"type": "error", "message": message})
		elif kind in {"session.created", "session.updated", "transcription_session.updated"}:
			LOGGER.info("Realtime %s", kind)

	def _finalizer_done(self, task: asyncio.Task) -> None:
		self._finalizers.discard(task)
		if not task.cancelled() and task.exception() is not None:
			LOGGER.error("Realtime transcript finalization failed: %s", task.exception())

	async def wait_finalized(self) -> None:
		"""Wait for every in-flight transcript finalization."""
		while self._finalizers:
			await asyncio.gather(*list(self._finalizers), return_exceptions=True)

	async def _finalize(self, raw_text: str, item_id: Optional[str]) -> Optional[TranscriptEntry]:
		epoch = self._epoch
		context = self.context.transcripts.context_tail(self.settings.context_tail_chars)
		text = await self.polisher.polish(raw_text or "", context)
		if not self._is_current(epoch) or self._closed:
			LOGGER.info("Discarding transcript for a finished session item=%s", item_id)
			return None
		if not text:
			return None
		entry = self.context.transcripts.append(TranscriptEntry(text=text, item_id=item_id))
		await self.hub.broadcast(
			self.context.session_id,
			{
				"type": "transcript_final",
				"itemId": item_id,
				"text": text,
				"timestamp": int(entry.timestamp * 1000),
			},
		)
		LOGGER.info("Realtime transcript received length=%s item=%s", len(text), item_id)
		return entry
