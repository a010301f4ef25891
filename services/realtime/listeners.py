"""Publish/subscribe fan-out of live transcript events to websocket listeners."""

from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, Dict, List, Set

from fastapi import WebSocket

LOGGER = logging.getLogger(__name__)


class ListenerHub:
	"""Track listener sockets per session id and broadcast JSON events to them.

	The hub never owns the sockets' lifecycle except in ``close_all``; a send
	failure on one listener is logged and does not affect the others.
	"""

	def __init__(self) -> None:
		self._listeners: Dict[str, Set[WebSocket]] = {}

	def subscribe(self, session_id: str, websocket: WebSocket) -> None:
		self._listeners.setdefault(session_id, set()).add(websocket)
		LOGGER.info("Listener subscribed session=%s listeners=%s", session_id, self.count(session_id))

	def unsubscribe(self, session_id: str, websocket: WebSocket) -> None:
		listeners = self._listeners.get(session_id)
		if not listeners:
			return
		listeners.discard(websocket)
		if not listeners:
			self._listeners.pop(session_id, None)
		LOGGER.info("Listener unsubscribed session=%s listeners=%s", session_id, self.count(session_id))

	def listeners(self, session_id: str) -> List[WebSocket]:
		return list(self._listeners.get(session_id, ()))

	def count(self, session_id: str) -> int:
		return len(self._listeners.get(session_id, ()))

	async def broadcast(self, session_id: str, payload: Dict[str, Any]) -> int:
		"""Send ``payload`` to every listener of the session; return how many succeeded."""
		message = json.dumps(payload)
		delivered = 0
		for websocket in self.listeners(session_id):
			try:
				await websocket.send_text(message)
				delivered += 1
			except Exception as exc:  # pylint: disable=broad-exception-caught
				LOGGER.error("Realtime client send failed session=%s: %s", session_id, exc)
		return delivered

	async def close_all(self, session_id: str, code: int = 1000, reason: str = "session reset") -> None:
		"""Close and forget every listener of the session."""
		listeners = self._listeners.pop(session_id, set())
		for websocket in listeners:
			with contextlib.suppress(Exception):
				await websocket.close(code=code, reason=reason)
		if listeners:
			LOGGER.info("Closed %s listener(s) session=%s reason=%s", len(listeners), session_id, reason)
