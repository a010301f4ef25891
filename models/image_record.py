from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class GeneratedImage:
    """In-memory record of one rendered illustration.

    Attributes:
        prompt: Illustration brief sent to the image model.
        summary: Bullet summary the prompt was built from.
        phase: Workshop phase active when the run started.
        size: Requested image dimensions (e.g. ``1024x1024``).
        url: ``data:image/png;base64,...`` payload.
        pinned: User marked the image to keep on screen.
        deleted: Soft-delete flag; deleted images stay in the list but are hidden.
        id: Random hex identifier.
        created_at: ISO-8601 UTC timestamp.
    """

    prompt: str
    summary: str
    phase: str
    size: str
    url: str
    pinned: bool = False
    deleted: bool = False
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "summary": self.summary,
            "phase": self.phase,
            "createdAt": self.created_at,
            "size": self.size,
            "pinned": self.pinned,
            "deleted": self.deleted,
            "url": self.url,
        }
