"""Shared Responses API call used by the cleanup, summary and prompt stages."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from services.openai.response_parser import extract_text, extract_usage

LOGGER = logging.getLogger(__name__)


def build_input(system_prompt: str, user_prompt: str) -> List[Dict[str, Any]]:
    """Return a system + user message pair in Responses input format."""
    return [
        {"type": "message", "role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
        {"type": "message", "role": "user", "content": [{"type": "input_text", "text": user_prompt}]},
    ]


async def complete_text(
    client: AsyncOpenAI,
    *,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: Optional[float] = None,
    max_output_tokens: Optional[int] = None,
) -> str:
    """Run one text completion and return the stripped output text.

    Raises:
        RuntimeError: If the model returns no text.
    """
    kwargs: Dict[str, Any] = {"model": model, "input": build_input(system_prompt, user_prompt)}
    if temperature is not None:
        kwargs["temperature"] = temperature
    if max_output_tokens is not None:
        kwargs["max_output_tokens"] = max_output_tokens

    response = await client.responses.create(**kwargs)
    text = extract_text(response)
    LOGGER.debug("Text completion model=%s usage=%s", model, extract_usage(response))
    if not text:
        raise RuntimeError(f"{model} returned an empty response.")
    return text
