"""Summarize, build prompt, render: the single-flight generation pipeline."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional

from models.image_record import GeneratedImage
from models.session_models import SessionConfig, SessionContext, Summary
from services.openai.image_renderer import ImageRenderer
from services.openai.prompt_builder import IllustrationPromptBuilder
from services.openai.summarizer import TranscriptSummarizer
from utils.errors import NoActiveSessionError, PipelineStageError

LOGGER = logging.getLogger(__name__)

QUEUED_MESSAGE = "Generation already in progress; queued next run."
INSUFFICIENT_TRANSCRIPT = "Not enough transcript to generate (insufficient transcript in the summarization window)."


class _StaleSession(Exception):
	"""The session epoch advanced while a stage was awaiting."""


@dataclass
class GenerationResult:
	"""Outcome of one trigger: an image, a queued marker, an error or a discarded run."""

	image: Optional[GeneratedImage] = None
	queued: bool = False
	message: Optional[str] = None
	error: Optional[PipelineStageError] = None
	discarded: bool = False

	@property
	def ok(self) -> bool:
		return self.image is not None

	def to_dict(self) -> Dict[str, Any]:
		if self.queued:
			return {"queued": True, "message": self.message}
		if self.image is not None:
			return {"ok": True, "image": self.image.to_dict()}
		if self.error is not None:
			return self.error.to_payload()
		return {"ok": False, "discarded": self.discarded, "message": self.message}


class GenerationOrchestrator:
	"""Run the three-stage pipeline with single-flight and collapsed rerun.

	A trigger while idle runs the pipeline and returns its result. A trigger
	while a run is in flight only sets ``pending_rerun`` and returns
	``queued``; however many arrive, they collapse into one extra run that
	starts when the current one completes. ``in_progress`` is handed straight
	to that rerun so no other caller can start a pipeline in between.
	"""

	def __init__(
		self,
		context: SessionContext,
		*,
		summarizer: TranscriptSummarizer,
		prompt_builder: IllustrationPromptBuilder,
		renderer: ImageRenderer,
		is_current: Callable[[int], bool],
		max_images: int = 20,
	) -> None:
		self.context = context
		self.summarizer = summarizer
		self.prompt_builder = prompt_builder
		self.renderer = renderer
		self._is_current = is_current
		self.max_images = max_images
		self.runs_started = 0
		self._rerun_task: Optional[asyncio.Task] = None
		self._shutdown = False

	async def trigger(self, source: str = "manual") -> GenerationResult:
		if not self.context.active or self._shutdown:
			raise NoActiveSessionError()
		state = self.context.generation
		if state.in_progress:
			state.pending_rerun = True
			LOGGER.info("Generation queued while in progress source=%s", source)
			return GenerationResult(queued=True, message=QUEUED_MESSAGE)
		state.in_progress = True
		return await self._execute(source)

	async def wait_idle(self) -> None:
		"""Wait until any queued rerun (and reruns it queued) has finished."""
		while self._rerun_task is not None and not self._rerun_task.done():
			with contextlib.suppress(asyncio.CancelledError):
				await self._rerun_task

	async def shutdown(self) -> None:
		"""Stop scheduling reruns and cancel one that is running."""
		self._shutdown = True
		task, self._rerun_task = self._rerun_task, None
		if task is not None and not task.done():
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task

	async def _execute(self, source: str) -> GenerationResult:
		epoch = self.context.epoch
		try:
			result = await self._run_pipeline(epoch, source)
		finally:
			self._finish(epoch)
		return result

	def _finish(self, epoch: int) -> None:
		state = self.context.generation
		if state.pending_rerun and not self._shutdown and self._is_current(epoch):
			state.pending_rerun = False
			LOGGER.info("Starting queued generation rerun")
			self._rerun_task = asyncio.create_task(self._execute("rerun"))
			return
		state.pending_rerun = False
		state.in_progress = False

	async def _run_pipeline(self, epoch: int, source: str) -> GenerationResult:
		config = replace(self.context.config)
		self.runs_started += 1
		self.context.generation.last_error = None
		try:
			image = await self._run_stages(epoch, config)
		except _StaleSession:
			LOGGER.info("Discarding generation result for a finished session source=%s", source)
			return GenerationResult(discarded=True, message="Session changed while generating; result discarded.")
		except PipelineStageError as exc:
			if self._is_current(epoch):
				self.context.generation.last_error = exc.message
			LOGGER.error("Generation failed stage=%s source=%s: %s", exc.stage, source, exc.message)
			return GenerationResult(error=exc)

		self._store(image)
		LOGGER.info(
			"Image generated id=%s phase=%s size=%s summary_length=%s prompt_length=%s source=%s",
			image.id,
			image.phase,
			image.size,
			len(image.summary),
			len(image.prompt),
			source,
		)
		return GenerationResult(image=image)

	async def _run_stages(self, epoch: int, config: SessionConfig) -> GeneratedImage:
		transcript = self.context.transcripts.window_text(config.summarization_window_minutes)
		if not transcript:
			raise PipelineStageError("summarize", INSUFFICIENT_TRANSCRIPT)

		summary = await self._stage("summarize", epoch, self.summarizer.summarize(transcript, config))
		self.context.last_summary = Summary(text=summary, phase=config.phase)

		prompt = await self._stage("prompt", epoch, self.prompt_builder.build(summary, config))
		self.context.last_prompt = prompt

		url = await self._stage("render", epoch, self.renderer.render(prompt, config.image_size))
		return GeneratedImage(prompt=prompt, summary=summary, phase=config.phase, size=config.image_size, url=url)

	async def _stage(self, stage: str, epoch: int, call: Awaitable[str]) -> str:
		try:
			value = await call
		except PipelineStageError:
			raise
		except Exception as exc:  # pylint: disable=broad-exception-caught
			raise PipelineStageError(stage, f"{stage} failed: {exc}", details=str(exc)) from exc
		if not self._is_current(epoch) or self._shutdown:
			raise _StaleSession()
		return value

	def _store(self, image: GeneratedImage) -> None:
		images = self.context.images
		images.insert(0, image)
		if len(images) > self.max_images:
			evicted = images[self.max_images:]
			del images[self.max_images:]
			LOGGER.info("Evicted %s image(s) beyond cap=%s", len(evicted), self.max_images)
