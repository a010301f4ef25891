"""Periodic auto-generation timer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

from models.session_models import SessionContext
from utils.errors import IllustratorError

LOGGER = logging.getLogger(__name__)


class AutoGenerationScheduler:
	"""Trigger generation every ``auto_interval_minutes`` while ``auto_generate`` is on.

	The interval is re-read before every sleep, so config updates take effect
	from the next cycle. Triggers go through the orchestrator like manual
	ones and are therefore subject to the same single-flight rule.
	"""

	def __init__(
		self,
		context: SessionContext,
		trigger: Callable[[str], Awaitable[object]],
		*,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self.context = context
		self._trigger = trigger
		self._sleep = sleep
		self._task: Optional[asyncio.Task] = None
		self.ticks = 0

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	def _wanted(self) -> bool:
		return self.context.active and self.context.config.auto_generate

	async def reconfigure(self) -> None:
		"""Start or stop the timer to match the current config."""
		if self._wanted() and not self.running:
			self._task = asyncio.create_task(self._loop())
			LOGGER.info("Auto generation enabled interval_minutes=%s", self.context.config.auto_interval_minutes)
		elif not self._wanted() and self.running:
			await self.stop()

	async def stop(self) -> None:
		task, self._task = self._task, None
		if task is not None and not task.done():
			task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await task
			LOGGER.info("Auto generation stopped")

	async def _loop(self) -> None:
		while True:
			await self._sleep(self.context.config.auto_interval_minutes * 60)
			if not self._wanted():
				return
			self.ticks += 1
			try:
				await self._trigger("auto")
			except IllustratorError as exc:
				LOGGER.error("Scheduled generation failed: %s", exc.message)
