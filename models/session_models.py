"""Session domain models for the live illustration workflow."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from models.image_record import GeneratedImage
from models.transcript_store import TranscriptStore

PHASES = ["Vision", "Mission", "Strategic objectives", "KPIs", "Other"]
DEFAULT_PHASE = "Vision"

LANGUAGE_HINTS = {
	"auto": None,
	"arabic": "ar",
	"english": "en",
}
IMAGE_SIZES = ["1024x1024", "1024x1536", "1536x1024"]


class RealtimeStatus(str, Enum):
	"""Upstream recognition connection lifecycle."""

	DISCONNECTED = "disconnected"
	CONNECTING = "connecting"
	CONNECTED = "connected"
	ERROR = "error"


# Wire (camelCase) name for every config field.
_CONFIG_ALIASES = {
	"summarization_window_minutes": "summarizationWindowMinutes",
	"transcript_window_minutes": "transcriptWindowMinutes",
	"phase": "phase",
	"language_mode": "languageMode",
	"workshop_type": "workshopType",
	"auto_interval_minutes": "autoIntervalMinutes",
	"auto_generate": "autoGenerate",
	"image_size": "imageSize",
	"style_preset": "stylePreset",
}


@dataclass
class SessionConfig:
	"""Workshop settings applied to transcription and generation."""

	summarization_window_minutes: float = 5
	transcript_window_minutes: float = 10
	phase: str = DEFAULT_PHASE
	language_mode: str = "auto"
	workshop_type: str = "NCIM Strategy Workshop"
	auto_interval_minutes: float = 5
	auto_generate: bool = False
	image_size: str = "1024x1024"
	style_preset: str = (
		"Flat, high-contrast illustration with simple shapes suitable for a strategy workshop slide."
	)

	@property
	def language_hint(self) -> Optional[str]:
		"""ISO language code for recognition, or None for auto-detect."""
		return LANGUAGE_HINTS.get(self.language_mode)

	def normalized(self) -> "SessionConfig":
		"""Return a copy with invalid values reset to their defaults."""
		defaults = SessionConfig()
		config = replace(self)
		if config.phase not in PHASES:
			config.phase = DEFAULT_PHASE
		if config.language_mode not in LANGUAGE_HINTS:
			config.language_mode = defaults.language_mode
		if config.image_size not in IMAGE_SIZES:
			config.image_size = defaults.image_size
		for name in ("summarization_window_minutes", "transcript_window_minutes", "auto_interval_minutes"):
			value = getattr(config, name)
			if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
				setattr(config, name, getattr(defaults, name))
		if not (config.workshop_type or "").strip():
			config.workshop_type = defaults.workshop_type
		if not (config.style_preset or "").strip():
			config.style_preset = defaults.style_preset
		config.auto_generate = bool(config.auto_generate)
		return config

	def merged(self, patch: Mapping[str, Any]) -> "SessionConfig":
		"""Return a normalized copy with provided (non-None) fields applied.

		Keys may be snake_case field names or their camelCase wire aliases;
		unknown keys are ignored.
		"""
		by_alias = {alias: name for name, alias in _CONFIG_ALIASES.items()}
		updates: Dict[str, Any] = {}
		for key, value in patch.items():
			name = key if key in _CONFIG_ALIASES else by_alias.get(key)
			if name is None or value is None:
				continue
			updates[name] = value
		return replace(self, **updates).normalized()

	def to_dict(self) -> Dict[str, Any]:
		return {_CONFIG_ALIASES[f.name]: getattr(self, f.name) for f in fields(self)}


@dataclass
class Summary:
	text: str
	phase: str
	timestamp: float = field(default_factory=time.time)

	def to_dict(self) -> Dict[str, Any]:
		return {"text": self.text, "phase": self.phase, "timestamp": int(self.timestamp * 1000)}


@dataclass
class GenerationState:
	"""Single-flight bookkeeping for the generation pipeline."""

	in_progress: bool = False
	pending_rerun: bool = False
	last_error: Optional[str] = None


@dataclass
class RealtimeConnectionState:
	"""Upstream recognition handle owned by the session."""

	status: RealtimeStatus = RealtimeStatus.DISCONNECTED
	upstream: Any = None
	last_error: Optional[str] = None


@dataclass
class SessionContext:
	"""Everything one workshop session owns; replaced wholesale on start/end."""

	active: bool = False
	credential: Optional[str] = None
	epoch: int = 0
	session_id: str = field(default_factory=lambda: uuid4().hex)
	config: SessionConfig = field(default_factory=SessionConfig)
	transcripts: TranscriptStore = field(default_factory=TranscriptStore)
	images: List[GeneratedImage] = field(default_factory=list)
	last_summary: Optional[Summary] = None
	last_prompt: Optional[str] = None
	generation: GenerationState = field(default_factory=GenerationState)
	realtime: RealtimeConnectionState = field(default_factory=RealtimeConnectionState)

	def find_image(self, image_id: str) -> Optional[GeneratedImage]:
		for image in self.images:
			if image.id == image_id:
				return image
		return None

	def visible_images(self) -> List[GeneratedImage]:
		return [image for image in self.images if not image.deleted]
