"""Optional cleanup pass over finalized transcript segments."""

import logging
import os

from openai import AsyncOpenAI

from services.openai.prompts import polish_system_prompt, polish_user_prompt
from services.openai.text_generation import complete_text
from utils.transcript_text import sanitize_transcript

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = os.getenv("AII_POLISH_MODEL", "gpt-4o-mini")


class TranscriptPolisher:
    """Fix casing and punctuation of a segment without inventing content.

    The cleanup call is best-effort: when it fails, or when polishing is
    disabled, the sanitized raw text is returned unchanged.
    """

    def __init__(self, client: AsyncOpenAI, *, enabled: bool = True, model: str = DEFAULT_MODEL) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.enabled = enabled
        self.model = model

    async def polish(self, raw_text: str, context: str = "") -> str:
        """Return cleaned text, or an empty string when the segment is noise."""
        sanitized = sanitize_transcript(raw_text)
        if not sanitized or not self.enabled:
            return sanitized
        try:
            polished = await complete_text(
                self.client,
                model=self.model,
                system_prompt=polish_system_prompt(),
                user_prompt=polish_user_prompt(sanitized, context),
                temperature=0.2,
                max_output_tokens=200,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Transcript polish failed: %s", exc)
            return sanitized
        return sanitize_transcript(polished) or sanitized
