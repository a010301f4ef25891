"""Shared fakes for the OpenAI client, the realtime upstream and listener sockets."""

import asyncio
import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from main import create_app
from models.session_models import SessionContext
from utils.settings import Settings


class FakeResponses:
    def __init__(self, replies=None):
        self.calls = []
        self.replies = list(replies or [])
        self.error = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        text = self.replies.pop(0) if self.replies else f"response {len(self.calls)}"
        return SimpleNamespace(output=[], output_text=text, usage=None)


class FakeImages:
    def __init__(self):
        self.calls = []

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(data=[SimpleNamespace(b64_json="aW1hZ2U=")])


class FakeTranscriptions:
    def __init__(self, text="We agreed on a clear vision for digital services"):
        self.text = text
        self.calls = []
        self.failing_names = set()

    async def create(self, **kwargs):
        audio_file = kwargs["file"]
        self.calls.append({**kwargs, "filename": audio_file.name, "payload": audio_file.getvalue()})
        if audio_file.name in self.failing_names:
            raise RuntimeError(f"unsupported file {audio_file.name}")
        return SimpleNamespace(text=self.text)


class FakeModels:
    def __init__(self):
        self.error = None

    async def list(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(id="gpt-4o-mini")])


class FakeOpenAI:
    """Stands in for ``AsyncOpenAI`` with only the endpoints the service calls."""

    def __init__(self):
        self.responses = FakeResponses()
        self.images = FakeImages()
        self.audio = SimpleNamespace(transcriptions=FakeTranscriptions())
        self.models = FakeModels()
        self.closed = False

    async def close(self):
        self.closed = True


class FakeRealtimeConnection:
    """Realtime upstream double: records what was sent, yields queued server events."""

    def __init__(self):
        self.updates = []
        self.appended = []
        self.commits = 0
        self.closed = False
        self._events = asyncio.Queue()
        self.session = SimpleNamespace(update=self._update)
        self.input_audio_buffer = SimpleNamespace(append=self._append, commit=self._commit)

    async def _update(self, session):
        self.updates.append(session)

    async def _append(self, audio):
        self.appended.append(audio)

    async def _commit(self):
        self.commits += 1

    def push(self, event):
        self._events.put_nowait(event)

    def __aiter__(self):
        return self

    async def __anext__(self):
        event = await self._events.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def close(self):
        self.closed = True
        self._events.put_nowait(None)


class FakeWebSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.closed_with = None
        self.fail = fail

    async def send_text(self, message):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(message))

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)


def make_context(epoch=1):
    return SessionContext(active=True, credential="sk-test", epoch=epoch)


def current_checker(context):
    return lambda epoch: context.active and context.epoch == epoch


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def settings():
    return Settings(openai_api_key=None, enable_polish=False, realtime_enabled=False)


@pytest.fixture
def realtime_connections():
    return []


@pytest.fixture
def connector_factory(realtime_connections):
    def factory(client, settings):
        async def connect():
            connection = FakeRealtimeConnection()
            realtime_connections.append(connection)
            return connection

        return connect

    return factory


@pytest.fixture
def client(settings, fake_openai, connector_factory):
    app = create_app(settings=settings, client_factory=lambda api_key: fake_openai, connector_factory=connector_factory)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def realtime_client(fake_openai, connector_factory):
    realtime_settings = Settings(openai_api_key=None, enable_polish=False, realtime_enabled=True)
    app = create_app(
        settings=realtime_settings,
        client_factory=lambda api_key: fake_openai,
        connector_factory=connector_factory,
    )
    with TestClient(app) as test_client:
        yield test_client


class ScriptedWebSocket:
    """Server-side websocket double driven by queued client messages."""

    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.accepted = False
        self.closed_with = None

    async def accept(self):
        self.accepted = True

    async def receive(self):
        return await self.incoming.get()

    async def send_text(self, message):
        self.sent.append(json.loads(message))

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)

    def push_json(self, payload):
        self.incoming.put_nowait({"type": "websocket.receive", "text": json.dumps(payload)})

    def push_bytes(self, data):
        self.incoming.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self):
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def events(self, kind):
        return [event for event in self.sent if event.get("type") == kind]


async def wait_until(predicate, attempts=300, interval=0.01):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def stand_in_ffmpeg(tmp_path):
    """Write an executable shell script to use as ``ffmpeg_path``."""

    def write(name, body):
        script = tmp_path / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(0o755)
        return str(script)

    return write
