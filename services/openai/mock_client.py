"""Offline stand-in for ``AsyncOpenAI`` used when ``AII_MOCK_OPENAI`` is set.

Only the endpoints the service calls are provided, each returning a fixed
payload shaped like the SDK's response objects.
"""

import logging
from types import SimpleNamespace

LOGGER = logging.getLogger(__name__)

MOCK_MODEL_ID = "mock-model"
MOCK_TRANSCRIPT = "mock transcript"
MOCK_TEXT = "mock summary or prompt"
# 1x1 PNG.
MOCK_IMAGE_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAusB9Y3nKwAAAABJRU5ErkJggg=="
)


class _MockModels:
    async def list(self):
        return SimpleNamespace(data=[SimpleNamespace(id=MOCK_MODEL_ID)])


class _MockTranscriptions:
    async def create(self, **kwargs):
        return SimpleNamespace(text=MOCK_TRANSCRIPT)


class _MockResponses:
    async def create(self, **kwargs):
        return SimpleNamespace(output=[], output_text=MOCK_TEXT, usage=None)


class _MockImages:
    async def generate(self, **kwargs):
        return SimpleNamespace(data=[SimpleNamespace(b64_json=MOCK_IMAGE_B64)])


class MockOpenAI:
    """Canned transcription, text and image responses; no network access."""

    def __init__(self) -> None:
        self.models = _MockModels()
        self.audio = SimpleNamespace(transcriptions=_MockTranscriptions())
        self.responses = _MockResponses()
        self.images = _MockImages()

    async def close(self) -> None:
        return None


def mock_client_factory(api_key: str) -> MockOpenAI:
    LOGGER.info("Using mock OpenAI client")
    return MockOpenAI()
