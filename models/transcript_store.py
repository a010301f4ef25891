"""Rolling, time-windowed transcript buffer."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

DEFAULT_WINDOW_MINUTES = 10


@dataclass(frozen=True)
class TranscriptEntry:
	"""One finalized transcript segment."""

	text: str
	timestamp: float = field(default_factory=time.time)
	item_id: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		return {"text": self.text, "timestamp": int(self.timestamp * 1000), "itemId": self.item_id}


class TranscriptStore:
	"""Append-only transcript log trimmed to a maximum age.

	Entries are never edited after ``append``; the only way out is ``trim``,
	which runs on every append and whenever the window changes.
	"""

	def __init__(self, window_minutes: float = DEFAULT_WINDOW_MINUTES, clock: Callable[[], float] = time.time) -> None:
		self._window_minutes = window_minutes
		self._clock = clock
		self._entries: List[TranscriptEntry] = []

	@property
	def window_minutes(self) -> float:
		return self._window_minutes

	@window_minutes.setter
	def window_minutes(self, minutes: float) -> None:
		self._window_minutes = minutes
		self.trim()

	@property
	def entries(self) -> Tuple[TranscriptEntry, ...]:
		return tuple(self._entries)

	def __len__(self) -> int:
		return len(self._entries)

	def append(self, entry: TranscriptEntry) -> TranscriptEntry:
		"""Store a finalized entry and drop anything past the window."""
		self._entries.append(entry)
		self.trim()
		return entry

	def trim(self, now: Optional[float] = None) -> int:
		"""Remove entries older than the transcript window; return how many were dropped."""
		cutoff = self._cutoff(self._window_minutes, now)
		kept = [entry for entry in self._entries if entry.timestamp >= cutoff]
		dropped = len(self._entries) - len(kept)
		self._entries = kept
		return dropped

	def window_text(self, duration_minutes: float, now: Optional[float] = None) -> str:
		"""Join the text of entries newer than ``duration_minutes``, in arrival order."""
		cutoff = self._cutoff(duration_minutes, now)
		return " ".join(entry.text for entry in self._entries if entry.timestamp >= cutoff).strip()

	def context_tail(self, max_chars: int, now: Optional[float] = None) -> str:
		"""Return the last ``max_chars`` characters of the transcript-window text."""
		if max_chars <= 0:
			return ""
		return self.window_text(self._window_minutes, now)[-max_chars:]

	def recent(self, limit: int = 50) -> List[TranscriptEntry]:
		return self._entries[-limit:] if limit else list(self._entries)

	def clear(self) -> None:
		self._entries = []

	def _cutoff(self, minutes: float, now: Optional[float]) -> float:
		current = self._clock() if now is None else now
		return current - minutes * 60
