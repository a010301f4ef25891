import pytest

from utils.errors import ProtocolError
from utils.media_validation import (
    MAX_STREAM_FRAME_BYTES,
    MAX_UPLOAD_BYTES,
    PCM_PASSTHROUGH,
    extension_for_mime,
    normalize_mime,
    resolve_stream_format,
    validate_chunk_ms,
    validate_stream_frame,
    validate_upload_size,
)
from utils.transcript_text import sanitize_transcript


def test_normalize_mime_strips_codec_parameters():
    assert normalize_mime("Audio/WebM;codecs=opus") == "audio/webm"
    assert normalize_mime(None) == "application/octet-stream"
    assert extension_for_mime("audio/ogg; codecs=opus") == "ogg"
    assert extension_for_mime("audio/x-unknown") is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("pcm16", PCM_PASSTHROUGH),
        ("webm", "webm"),
        ("audio/webm;codecs=opus", "webm"),
        ("audio/ogg", "ogg"),
        ("MP3", "mp3"),
    ],
)
def test_resolve_stream_format(value, expected):
    assert resolve_stream_format(value) == expected


@pytest.mark.parametrize("value", [None, "", "video/quicktime", "midi"])
def test_resolve_stream_format_rejects_unknown(value):
    with pytest.raises(ProtocolError):
        resolve_stream_format(value)


def test_validate_chunk_ms_bounds():
    assert validate_chunk_ms(None) is None
    assert validate_chunk_ms(250) == 250
    for bad in (5, 60_000, "fast", True):
        with pytest.raises(ProtocolError):
            validate_chunk_ms(bad)


def test_validate_stream_frame_rejects_oversized_frames():
    validate_stream_frame(b"\x00" * 10)
    with pytest.raises(ProtocolError):
        validate_stream_frame(b"\x00" * (MAX_STREAM_FRAME_BYTES + 1))


def test_validate_upload_size():
    payload = b"\x00" * 2048
    assert validate_upload_size(payload) is payload

    with pytest.raises(ProtocolError) as small:
        validate_upload_size(b"\x00" * 100)
    assert small.value.message == "Audio chunk too small"

    with pytest.raises(ProtocolError):
        validate_upload_size(None)

    with pytest.raises(ProtocolError) as large:
        validate_upload_size(b"\x00" * (MAX_UPLOAD_BYTES + 1))
    assert large.value.message == "Audio chunk too large"


@pytest.mark.parametrize("noise", ["", "   ", "...", "?!", "a", "-", "؟"])
def test_sanitize_transcript_rejects_noise(noise):
    assert sanitize_transcript(noise) == ""


@pytest.mark.parametrize(
    "text, expected",
    [
        ("  We need a clear vision.  ", "We need a clear vision."),
        ("ok", "ok"),
        ("نعم", "نعم"),
    ],
)
def test_sanitize_transcript_keeps_speech(text, expected):
    assert sanitize_transcript(text) == expected
