"""Summarize the recent transcript window into short bullet points."""

import os

from openai import AsyncOpenAI

from models.session_models import SessionConfig
from services.openai.prompts import summary_system_prompt, summary_user_prompt
from services.openai.text_generation import complete_text

DEFAULT_MODEL = os.getenv("AII_SUMMARY_MODEL", "gpt-4o-mini")


class TranscriptSummarizer:
    """First generation stage: transcript window to phase-aware bullets."""

    def __init__(self, client: AsyncOpenAI, *, model: str = DEFAULT_MODEL) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.model = model

    async def summarize(self, transcript: str, config: SessionConfig) -> str:
        """Return 3-6 English bullet points for the given transcript text."""
        if not transcript.strip():
            raise ValueError("Transcript text is required for summarization.")
        return await complete_text(
            self.client,
            model=self.model,
            system_prompt=summary_system_prompt(),
            user_prompt=summary_user_prompt(config, transcript),
            temperature=0.4,
        )
