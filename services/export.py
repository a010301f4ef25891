"""Markdown export of a session's prompts and last summary."""

from datetime import datetime, timezone
from typing import Optional

from models.session_models import SessionContext
from utils.errors import NothingToExportError

EXPORT_FILENAME = "session-summary.md"


def build_session_markdown(context: SessionContext, now: Optional[datetime] = None) -> str:
    """Render the export document for the current session.

    Raises:
        NothingToExportError: If no session is running and no image exists.
    """
    if not context.active and not context.images:
        raise NothingToExportError()

    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    phases = list(dict.fromkeys(image.phase for image in context.images))
    lines = [
        "# NCIM AI Illustrator session",
        f"Date: {timestamp}",
        f"Workshop type: {context.config.workshop_type}",
        f"Phases used: {', '.join(phases)}",
        "",
        "## Prompts",
    ]
    for index, image in enumerate(context.images, start=1):
        lines.append(f"{index}. [{image.created_at}] ({image.phase})")
        lines.append(f"Prompt: {image.prompt}")
        lines.append("")
    if context.last_summary is not None:
        lines.append("## Last summary")
        lines.append(context.last_summary.text)
    return "\n".join(lines)
