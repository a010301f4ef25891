import asyncio
import base64
import sys

import pytest

import services.realtime.bridge as bridge_module
from conftest import FakeOpenAI, FakeRealtimeConnection, ScriptedWebSocket, wait_until
from services.realtime.ws_audio import AudioConnectionHandler
from services.session_manager import SessionManager
from utils.settings import Settings

needs_posix_shell = pytest.mark.skipif(sys.platform == "win32", reason="stand-in ffmpeg is a shell script")


def make_manager(connect, ffmpeg_path="ffmpeg"):
    settings = Settings(openai_api_key=None, enable_polish=False, realtime_enabled=True, ffmpeg_path=ffmpeg_path)
    return SessionManager(
        settings,
        client_factory=lambda api_key: FakeOpenAI(),
        connector_factory=lambda client, settings: connect,
    )


def recording_connector():
    connections = []

    async def connect():
        connection = FakeRealtimeConnection()
        connections.append(connection)
        return connection

    return connect, connections


def appended_pcm(connections):
    return b"".join(base64.b64decode(chunk) for connection in connections for chunk in connection.appended)


async def open_socket(manager):
    websocket = ScriptedWebSocket()
    handler = AudioConnectionHandler(manager, websocket)
    task = asyncio.create_task(handler.run())
    await wait_until(lambda: websocket.events("ready"))
    return websocket, handler, task


def test_hung_upstream_does_not_stall_ingestion(monkeypatch):
    monkeypatch.setattr(bridge_module, "RECONNECT_BASE_SECONDS", 60.0)

    async def scenario():
        release = asyncio.Event()

        async def connect():
            await release.wait()
            raise ConnectionError("upstream unreachable")

        manager = make_manager(connect)
        await manager.start("sk-test")
        websocket, handler, task = await open_socket(manager)

        websocket.push_json({"type": "start", "format": "pcm16"})
        for _ in range(50):
            websocket.push_bytes(b"\x01\x00" * 2048)
        websocket.push_json({"type": "commit"})
        drained = await wait_until(websocket.incoming.empty)
        attempts_while_hung = manager.bridge.connect_attempts
        errors_while_hung = websocket.events("error")

        release.set()
        acked = await wait_until(lambda: {"type": "ack", "message": "commit"} in websocket.sent)
        attempts_after = manager.bridge.connect_attempts

        websocket.disconnect()
        await task
        await manager.end()
        return drained, attempts_while_hung, errors_while_hung, acked, attempts_after

    drained, attempts_while_hung, errors_while_hung, acked, attempts_after = asyncio.run(scenario())

    assert drained is True
    assert attempts_while_hung == 1
    assert errors_while_hung == []
    assert acked is True
    assert attempts_after == 1


def test_pcm_backlog_beyond_cap_is_dropped(monkeypatch):
    monkeypatch.setattr("services.realtime.ws_audio.MAX_PENDING_PCM_BYTES", 8192)

    async def scenario():
        release = asyncio.Event()
        connections = []

        async def connect():
            await release.wait()
            connection = FakeRealtimeConnection()
            connections.append(connection)
            return connection

        manager = make_manager(connect)
        await manager.start("sk-test")
        websocket, handler, task = await open_socket(manager)

        websocket.push_json({"type": "start", "format": "pcm16"})
        for _ in range(4):
            websocket.push_bytes(b"\x02\x00" * 2048)
        await wait_until(websocket.incoming.empty)
        dropped = handler.dropped_pcm

        release.set()
        await wait_until(lambda: len(appended_pcm(connections)) >= 8192)
        websocket.disconnect()
        await task
        await manager.end()
        return dropped, appended_pcm(connections)

    dropped, delivered = asyncio.run(scenario())

    assert dropped == 8192
    assert len(delivered) == 8192


@needs_posix_shell
def test_container_audio_is_decoded_through_live_transcoder(stand_in_ffmpeg):
    payload = bytes(range(256)) * 16

    async def scenario():
        connect, connections = recording_connector()
        manager = make_manager(connect, ffmpeg_path=stand_in_ffmpeg("ffmpeg", "exec cat"))
        await manager.start("sk-test")
        websocket, handler, task = await open_socket(manager)

        websocket.push_json({"type": "start", "format": "audio/webm;codecs=opus"})
        websocket.push_bytes(payload[:2048])
        websocket.push_bytes(payload[2048:])
        delivered = await wait_until(lambda: len(appended_pcm(connections)) >= len(payload))
        process = handler.transcoder.process

        websocket.disconnect()
        await task
        result = (delivered, appended_pcm(connections), process.returncode, handler.transcoder, websocket.events("error"))
        await manager.end()
        return result

    delivered, pcm, returncode, transcoder, errors = asyncio.run(scenario())

    assert delivered is True
    assert pcm == payload
    assert returncode is not None
    assert transcoder is None
    assert errors == []


@needs_posix_shell
def test_transcoder_exit_is_reported_and_connection_survives(stand_in_ffmpeg):
    async def scenario():
        connect, _ = recording_connector()
        manager = make_manager(connect, ffmpeg_path=stand_in_ffmpeg("ffmpeg", "exit 1"))
        await manager.start("sk-test")
        websocket, handler, task = await open_socket(manager)

        websocket.push_json({"type": "start", "format": "webm"})
        websocket.push_bytes(b"\x1a\x45\xdf\xa3" * 64)

        def exited():
            transcoder = handler.transcoder
            return transcoder is None or (transcoder.process is not None and transcoder.process.returncode is not None)

        await wait_until(exited)
        if handler.transcoder is not None:
            websocket.push_bytes(b"\x1a\x45\xdf\xa3" * 64)
        reported = await wait_until(lambda: websocket.events("error"))
        errors = websocket.events("error")
        transcoder = handler.transcoder
        still_open = not task.done()

        websocket.push_json({"type": "commit"})
        acked = await wait_until(lambda: {"type": "ack", "message": "commit"} in websocket.sent)

        websocket.disconnect()
        await task
        await manager.end()
        return reported, errors, transcoder, still_open, acked

    reported, errors, transcoder, still_open, acked = asyncio.run(scenario())

    assert reported is True
    assert errors[0]["code"] == "TRANSCODE_ERROR"
    assert transcoder is None
    assert still_open is True
    assert acked is True
