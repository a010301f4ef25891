"""Lifecycle owner of the single workshop session and everything wired to it."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from openai import AsyncOpenAI

from models.image_record import GeneratedImage
from models.session_models import SessionConfig, SessionContext
from models.transcript_store import TranscriptEntry
from services.audio.batch_transcriber import BatchTranscriber
from services.export import build_session_markdown
from services.generation.orchestrator import GenerationOrchestrator, GenerationResult
from services.generation.scheduler import AutoGenerationScheduler
from services.openai.image_renderer import ImageRenderer
from services.openai.mock_client import mock_client_factory
from services.openai.prompt_builder import IllustrationPromptBuilder
from services.openai.prompts import transcription_prompt
from services.openai.summarizer import TranscriptSummarizer
from services.openai.transcript_polish import TranscriptPolisher
from services.realtime.bridge import Connector, RealtimeTranscriptionBridge
from services.realtime.listeners import ListenerHub
from utils.errors import CredentialError, ImageNotFoundError, NoActiveSessionError, RecognitionError
from utils.media_validation import validate_upload_size
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[str], AsyncOpenAI]
ConnectorFactory = Callable[[AsyncOpenAI, Settings], Connector]

# Config fields that change what the realtime recognizer is told.
RECOGNITION_FIELDS = ("language_mode", "phase", "workshop_type")
STATUS_TRANSCRIPT_LIMIT = 50


def default_client_factory(api_key: str) -> AsyncOpenAI:
	return AsyncOpenAI(api_key=api_key)


async def _close_client(client: Any) -> None:
	aclose = getattr(client, "close", None) or getattr(client, "aclose", None)
	if aclose is None:
		return
	try:
		result = aclose()
		if inspect.isawaitable(result):
			await result
	except Exception as exc:  # pylint: disable=broad-exception-caught
		LOGGER.error("Failed to close OpenAI client: %s", exc)


class SessionManager:
	"""Create, reconfigure and destroy the one session context.

	The context is replaced wholesale on ``start`` and ``end``; its epoch
	increases on every start. Every component built for a session receives
	``is_current`` so results that resolve after the session changed are
	dropped instead of written into the new one.
	"""

	def __init__(
		self,
		settings: Settings,
		*,
		client_factory: Optional[ClientFactory] = None,
		connector_factory: Optional[ConnectorFactory] = None,
		hub: Optional[ListenerHub] = None,
	) -> None:
		self.settings = settings
		if client_factory is None:
			client_factory = mock_client_factory if settings.mock_openai else default_client_factory
		self.client_factory = client_factory
		self.connector_factory = connector_factory
		self.hub = hub or ListenerHub()
		self._epoch = 0
		self.context = self._blank_context()
		self.client: Optional[AsyncOpenAI] = None
		self.polisher: Optional[TranscriptPolisher] = None
		self.batch_transcriber: Optional[BatchTranscriber] = None
		self.bridge: Optional[RealtimeTranscriptionBridge] = None
		self.orchestrator: Optional[GenerationOrchestrator] = None
		self.scheduler: Optional[AutoGenerationScheduler] = None
		self._connect_task: Optional[asyncio.Task] = None

	@property
	def active(self) -> bool:
		return self.context.active

	@property
	def realtime_enabled(self) -> bool:
		return self.settings.realtime_enabled

	def is_current(self, epoch: int) -> bool:
		return self.context.active and self.context.epoch == epoch

	def require_active(self) -> SessionContext:
		if not self.context.active:
			raise NoActiveSessionError()
		return self.context

	def _blank_context(self) -> SessionContext:
		context = SessionContext(epoch=self._epoch)
		context.transcripts.window_minutes = context.config.transcript_window_minutes
		return context

	async def start(self, credential: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> SessionConfig:
		"""Reset everything and begin a new session.

		The realtime upstream is opened in the background; this returns as soon
		as the context is ready.

		Raises:
			CredentialError: If neither a credential nor ``OPENAI_API_KEY`` is available.
		"""
		api_key = (credential or "").strip() or self.settings.openai_api_key
		if not api_key:
			raise CredentialError("API key is required to start a session")

		await self._teardown("session reset")

		try:
			client = self.client_factory(api_key)
		except Exception as exc:  # pylint: disable=broad-exception-caught
			raise CredentialError("Failed to initialize OpenAI client", details=str(exc)) from exc

		self._epoch += 1
		config = SessionConfig().merged(overrides or {})
		context = SessionContext(active=True, credential=api_key, epoch=self._epoch, config=config)
		context.transcripts.window_minutes = config.transcript_window_minutes
		self.context = context
		self._wire(client)

		if self.settings.realtime_enabled:
			self._connect_task = asyncio.create_task(self.bridge.connect_in_background())
		await self.scheduler.reconfigure()

		LOGGER.info(
			"Session started epoch=%s language=%s workshop=%s image_size=%s phase=%s transcription_model=%s rate=%s",
			context.epoch,
			config.language_mode,
			config.workshop_type,
			config.image_size,
			config.phase,
			self.settings.transcription_model,
			self.settings.sample_rate,
		)
		return config

	def _wire(self, client: AsyncOpenAI) -> None:
		context = self.context
		self.client = client
		self.polisher = TranscriptPolisher(client, enabled=self.settings.enable_polish)
		self.batch_transcriber = BatchTranscriber(
			client,
			model=self.settings.transcription_model,
			sample_rate=self.settings.sample_rate,
			ffmpeg_path=self.settings.ffmpeg_path,
			audio_debug=self.settings.audio_debug,
		)
		connector = self.connector_factory(client, self.settings) if self.connector_factory else None
		self.bridge = RealtimeTranscriptionBridge(
			client,
			context,
			self.hub,
			settings=self.settings,
			polisher=self.polisher,
			is_current=self.is_current,
			connector=connector,
		)
		self.orchestrator = GenerationOrchestrator(
			context,
			summarizer=TranscriptSummarizer(client),
			prompt_builder=IllustrationPromptBuilder(client),
			renderer=ImageRenderer(client),
			is_current=self.is_current,
			max_images=self.settings.max_images,
		)
		self.scheduler = AutoGenerationScheduler(context, self.orchestrator.trigger)

	async def end(self) -> None:
		"""Disconnect upstream and listeners, then drop all session state."""
		await self._teardown("session ended")
		self.context = self._blank_context()
		LOGGER.info("Session ended")

	async def _teardown(self, reason: str) -> None:
		context = self.context
		context.active = False

		if self.scheduler is not None:
			await self.scheduler.stop()
		if self.orchestrator is not None:
			await self.orchestrator.shutdown()
		task, self._connect_task = self._connect_task, None
		if task is not None and not task.done():
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task
		if self.bridge is not None:
			await self.bridge.close(reason)
		await self.hub.close_all(context.session_id, code=1000, reason=reason)
		if self.client is not None:
			await _close_client(self.client)

		self.client = None
		self.polisher = None
		self.batch_transcriber = None
		self.bridge = None
		self.orchestrator = None
		self.scheduler = None

	async def update_config(self, patch: Mapping[str, Any]) -> SessionConfig:
		"""Merge a partial config and propagate it to the live components."""
		context = self.require_active()
		previous = context.config
		context.config = previous.merged(patch)
		context.transcripts.window_minutes = context.config.transcript_window_minutes

		changed = [name for name in RECOGNITION_FIELDS if getattr(previous, name) != getattr(context.config, name)]
		if changed and self.bridge is not None:
			await self.bridge.refresh_config()
		if self.scheduler is not None:
			await self.scheduler.reconfigure()

		LOGGER.info(
			"Config updated phase=%s auto_interval=%s auto_generate=%s image_size=%s style=%s",
			context.config.phase,
			context.config.auto_interval_minutes,
			context.config.auto_generate,
			context.config.image_size,
			context.config.style_preset,
		)
		return context.config

	async def transcribe_upload(self, audio_bytes: Optional[bytes], mime_type: Optional[str]) -> str:
		"""Batch fallback: transcribe one uploaded chunk and persist the text."""
		context = self.require_active()
		audio_bytes = validate_upload_size(audio_bytes)
		epoch = context.epoch
		tail = context.transcripts.context_tail(self.settings.context_tail_chars)
		try:
			raw = await self.batch_transcriber.transcribe(
				audio_bytes,
				mime_type,
				language=context.config.language_hint,
				prompt=transcription_prompt(context.config, tail),
			)
		except RecognitionError as exc:
			if self.is_current(epoch):
				context.generation.last_error = exc.details or exc.message
			LOGGER.error("Transcription failed mime=%s size=%s: %s", mime_type, len(audio_bytes), exc.details)
			raise
		text = await self.polisher.polish(raw, tail)
		if not self.is_current(epoch):
			LOGGER.info("Discarding upload transcript for a finished session")
			return text
		if text:
			context.transcripts.append(TranscriptEntry(text=text))
			LOGGER.info("Transcript received length=%s mime=%s size=%s", len(text), mime_type, len(audio_bytes))
		return text

	async def generate(self, source: str = "manual") -> GenerationResult:
		self.require_active()
		return await self.orchestrator.trigger(source)

	def set_pinned(self, image_id: str, pinned: Optional[bool]) -> GeneratedImage:
		image = self.context.find_image(image_id)
		if image is None:
			raise ImageNotFoundError(image_id)
		if isinstance(pinned, bool):
			image.pinned = pinned
		return image

	def delete_image(self, image_id: str) -> GeneratedImage:
		image = self.context.find_image(image_id)
		if image is None:
			raise ImageNotFoundError(image_id)
		image.deleted = True
		return image

	def export_markdown(self) -> str:
		return build_session_markdown(self.context)

	async def ping(self, credential: Optional[str]) -> str:
		"""Validate an API key by listing models; return the first model id."""
		api_key = (credential or "").strip()
		if not api_key:
			raise CredentialError("API key is required")
		client = self.client_factory(api_key)
		try:
			models = await client.models.list()
		except Exception as exc:  # pylint: disable=broad-exception-caught
			LOGGER.error("Ping failed: %s", exc)
			raise CredentialError("Unable to validate API key", details=str(exc)) from exc
		finally:
			await _close_client(client)
		data = getattr(models, "data", None) or []
		first = getattr(data[0], "id", None) if data else None
		LOGGER.info("Ping success model=%s", first)
		return first or "ok"

	def status(self) -> Dict[str, Any]:
		"""Snapshot of everything the presentation layer renders."""
		context = self.context
		context.transcripts.trim()
		state = context.generation
		return {
			"sessionActive": context.active,
			"config": context.config.to_dict(),
			"lastSummary": context.last_summary.to_dict() if context.last_summary else None,
			"generationInProgress": state.in_progress,
			"pendingRerun": state.pending_rerun,
			"lastError": state.last_error,
			"transcripts": [entry.to_dict() for entry in context.transcripts.recent(STATUS_TRANSCRIPT_LIMIT)],
			"images": [image.to_dict() for image in context.visible_images()],
			"realtime": {
				"enabled": self.settings.realtime_enabled,
				"status": context.realtime.status.value,
				"model": self.settings.realtime_model,
				"transcribeModel": self.settings.realtime_transcribe_model,
				"listeners": self.hub.count(context.session_id),
			},
		}
