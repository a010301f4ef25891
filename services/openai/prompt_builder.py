"""Turn a workshop summary into a single English illustration brief."""

import os

from openai import AsyncOpenAI

from models.session_models import SessionConfig
from services.openai.prompts import illustration_system_prompt, illustration_user_prompt
from services.openai.text_generation import complete_text

DEFAULT_MODEL = os.getenv("AII_PROMPT_MODEL", "gpt-4o-mini")


class IllustrationPromptBuilder:
    """Second generation stage; output is always English and carries the style preset."""

    def __init__(self, client: AsyncOpenAI, *, model: str = DEFAULT_MODEL) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.model = model

    async def build(self, summary: str, config: SessionConfig) -> str:
        return await complete_text(
            self.client,
            model=self.model,
            system_prompt=illustration_system_prompt(),
            user_prompt=illustration_user_prompt(config, summary),
            temperature=0.7,
        )
