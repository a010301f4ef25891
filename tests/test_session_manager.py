import asyncio

import pytest

from conftest import FakeOpenAI
from services.openai.mock_client import MOCK_IMAGE_B64, MOCK_MODEL_ID, MOCK_TEXT, MOCK_TRANSCRIPT
from services.session_manager import SessionManager
from utils.errors import CredentialError, ImageNotFoundError, NoActiveSessionError, ProtocolError, RecognitionError
from utils.settings import Settings

UPLOAD = b"\x1a\x45\xdf\xa3" + b"\x00" * 4092


def make_manager(client=None, **overrides):
    client = client or FakeOpenAI()
    options = {"openai_api_key": None, "enable_polish": False, "realtime_enabled": False}
    options.update(overrides)
    settings = Settings(**options)
    return SessionManager(settings, client_factory=lambda api_key: client), client


def test_start_requires_a_credential():
    manager, _ = make_manager()

    with pytest.raises(CredentialError):
        asyncio.run(manager.start("  "))
    assert manager.active is False


def test_start_falls_back_to_environment_key():
    manager, _ = make_manager(openai_api_key="sk-env")

    asyncio.run(manager.start(None))

    assert manager.context.credential == "sk-env"


def test_restart_resets_state_and_advances_epoch():
    async def scenario():
        manager, client = make_manager()
        await manager.start("sk-test", {"phase": "KPIs"})
        first_epoch = manager.context.epoch
        await manager.transcribe_upload(UPLOAD, "audio/webm")
        await manager.generate()
        assert len(manager.context.images) == 1

        await manager.start("sk-test")
        return manager, client, first_epoch

    manager, client, first_epoch = asyncio.run(scenario())

    assert manager.context.epoch == first_epoch + 1
    assert manager.context.images == []
    assert len(manager.context.transcripts) == 0
    assert manager.context.config.phase == "Vision"
    assert client.closed is True


def test_upload_is_size_checked_before_any_remote_call():
    async def scenario():
        manager, client = make_manager()
        await manager.start("sk-test")
        with pytest.raises(ProtocolError):
            await manager.transcribe_upload(b"\x00" * 10, "audio/webm")
        return client

    client = asyncio.run(scenario())

    assert client.audio.transcriptions.calls == []


def test_upload_appends_transcript_with_language_hint():
    async def scenario():
        manager, client = make_manager()
        await manager.start("sk-test", {"languageMode": "english"})
        text = await manager.transcribe_upload(UPLOAD, "audio/webm;codecs=opus")
        return manager, client, text

    manager, client, text = asyncio.run(scenario())

    assert text == client.audio.transcriptions.text
    assert [entry.text for entry in manager.context.transcripts.entries] == [text]
    call = client.audio.transcriptions.calls[0]
    assert call["language"] == "en"
    assert "NCIM Strategy Workshop" in call["prompt"]


def test_upload_failure_records_last_error():
    async def scenario():
        manager, client = make_manager()
        client.audio.transcriptions.failing_names.update({"audio.webm", "audio.wav"})

        async def converter(audio):
            return b"RIFF"

        await manager.start("sk-test")
        manager.batch_transcriber.wav_converter = converter
        with pytest.raises(RecognitionError):
            await manager.transcribe_upload(UPLOAD, "audio/webm")
        return manager

    manager = asyncio.run(scenario())

    assert "audio.wav" in manager.context.generation.last_error
    assert len(manager.context.transcripts) == 0


def test_operations_require_an_active_session():
    manager, _ = make_manager()

    with pytest.raises(NoActiveSessionError):
        asyncio.run(manager.generate())
    with pytest.raises(NoActiveSessionError):
        asyncio.run(manager.transcribe_upload(UPLOAD, "audio/webm"))
    with pytest.raises(NoActiveSessionError):
        asyncio.run(manager.update_config({"phase": "Mission"}))


def test_update_config_merges_and_normalizes():
    async def scenario():
        manager, _ = make_manager()
        await manager.start("sk-test")
        return manager, await manager.update_config(
            {"phase": "Mission", "transcriptWindowMinutes": 3, "imageSize": "999x999", "autoGenerate": None}
        )

    manager, config = asyncio.run(scenario())

    assert config.phase == "Mission"
    assert config.image_size == "1024x1024"
    assert config.auto_generate is False
    assert manager.context.transcripts.window_minutes == 3


def test_pin_and_delete_images():
    async def scenario():
        manager, _ = make_manager()
        await manager.start("sk-test")
        await manager.transcribe_upload(UPLOAD, "audio/webm")
        image = (await manager.generate()).image
        manager.set_pinned(image.id, True)
        manager.set_pinned(image.id, True)
        pinned = image.pinned
        manager.set_pinned(image.id, None)
        still_pinned = image.pinned
        manager.delete_image(image.id)
        return manager, pinned, still_pinned

    manager, pinned, still_pinned = asyncio.run(scenario())

    assert pinned is True
    assert still_pinned is True
    assert manager.status()["images"] == []
    assert len(manager.context.images) == 1
    with pytest.raises(ImageNotFoundError):
        manager.set_pinned("missing", True)
    with pytest.raises(ImageNotFoundError):
        manager.delete_image("missing")


def test_end_clears_everything():
    async def scenario():
        manager, client = make_manager()
        await manager.start("sk-test")
        await manager.transcribe_upload(UPLOAD, "audio/webm")
        await manager.generate()
        await manager.end()
        return manager, client

    manager, client = asyncio.run(scenario())
    status = manager.status()

    assert status["sessionActive"] is False
    assert status["images"] == []
    assert status["transcripts"] == []
    assert status["lastSummary"] is None
    assert status["realtime"]["status"] == "disconnected"
    assert client.closed is True


def test_ping_validates_key():
    manager, client = make_manager()

    assert asyncio.run(manager.ping("sk-test")) == "gpt-4o-mini"

    client.models.error = RuntimeError("401 invalid api key")
    with pytest.raises(CredentialError) as excinfo:
        asyncio.run(manager.ping("sk-bad"))
    assert excinfo.value.message == "Unable to validate API key"

    with pytest.raises(CredentialError):
        asyncio.run(manager.ping(""))


def test_mock_mode_disables_realtime_and_polish():
    settings = Settings(openai_api_key=None, mock_openai=True)

    assert settings.realtime_enabled is False
    assert settings.enable_polish is False


def test_mock_mode_serves_canned_responses_without_network():
    async def scenario():
        manager = SessionManager(Settings(openai_api_key=None, mock_openai=True))
        await manager.start("sk-test")
        text = await manager.transcribe_upload(UPLOAD, "audio/webm")
        result = await manager.generate()
        status = manager.status()
        model = await manager.ping("sk-test")
        await manager.end()
        return text, result, status, model

    text, result, status, model = asyncio.run(scenario())

    assert text == MOCK_TRANSCRIPT
    assert result.ok is True
    assert result.image.url.endswith(MOCK_IMAGE_B64)
    assert result.image.prompt == MOCK_TEXT
    assert status["realtime"]["enabled"] is False
    assert model == MOCK_MODEL_ID
