"""Image rendering via the OpenAI Images API."""

import logging
import os

from openai import AsyncOpenAI

from services.openai.response_parser import extract_image_b64

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = os.getenv("AII_IMAGE_MODEL", "gpt-image-1")


class ImageRenderer:
    """Final generation stage: illustration prompt to PNG data URL."""

    def __init__(self, client: AsyncOpenAI, *, model: str = DEFAULT_MODEL) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.model = model

    async def render(self, prompt: str, size: str = "1024x1024") -> str:
        """Return ``data:image/png;base64,...`` for the prompt.

        Raises:
            RuntimeError: If the API returns no image payload.
        """
        response = await self.client.images.generate(model=self.model, prompt=prompt, size=size)
        b64 = extract_image_b64(response)
        if not b64:
            raise RuntimeError("No image data returned from OpenAI")
        LOGGER.info("Image rendered model=%s size=%s bytes_b64=%s", self.model, size, len(b64))
        return f"data:image/png;base64,{b64}"
