from types import SimpleNamespace

import httpx
import openai
import pytest

from src.api.services.transcriber import Transcriber, map_openai_error
from src.api.settings import APISettings
from src.stt_core.errors import (
    PayloadTooLarge,
    RateLimited,
    TranscriptionFailed,
    TranscriptionTimeout,
    Unauthorized,
)
from src.stt_core.types import ChunkInterval, ChunkPayload

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")


def _payload(data=b"audio", index=1):
    return ChunkPayload(index=index, total=2, data=data, interval=ChunkInterval(0.0, 12.0), content_type="audio/flac")


def _status_error(cls, code, message="boom"):
    response = httpx.Response(code, request=_REQUEST)
    return cls(message, response=response, body={"error": {"message": message}})


class _FakeTranscriptions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.result


def _client(transcriptions):
    async def _close():
        return None

    return SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions), close=_close)


def _settings(**overrides):
    base = dict(api_keys=["k"], whisper_mock_transcriber=False, openai_api_key="sk-test")
    base.update(overrides)
    return APISettings(**base)


@pytest.mark.asyncio
async def test_mock_mode_returns_deterministic_text():
    transcriber = Transcriber(_settings(whisper_mock_transcriber=True, openai_api_key=None))
    result = await transcriber.transcribe("u/01-01-2024--chunk01of02--1.flac", _payload())
    assert transcriber.mock
    assert result.text == "[mock transcript for 01-01-2024--chunk01of02--1.flac (12.0s)]"


def test_missing_api_key_is_a_configuration_error():
    with pytest.raises(RuntimeError):
        Transcriber(_settings(openai_api_key=None))


@pytest.mark.asyncio
async def test_openai_request_shape_and_result_mapping():
    fake = _FakeTranscriptions(result=SimpleNamespace(text="  hello there  ", language="english"))
    transcriber = Transcriber(_settings(), client=_client(fake))
    result = await transcriber.transcribe("u/clip.flac", _payload())

    assert result.text == "hello there"
    assert result.language == "english"
    assert fake.kwargs["model"] == "whisper-1"
    assert fake.kwargs["response_format"] == "verbose_json"
    assert fake.kwargs["file"] == ("clip.flac", b"audio", "audio/flac")


@pytest.mark.asyncio
async def test_non_whisper_models_request_plain_json():
    fake = _FakeTranscriptions(result=SimpleNamespace(text="hi"))
    transcriber = Transcriber(_settings(openai_whisper_model="gpt-4o-mini-transcribe"), client=_client(fake))
    result = await transcriber.transcribe("u/clip.flac", _payload())
    assert fake.kwargs["response_format"] == "json"
    assert result.language is None


@pytest.mark.asyncio
async def test_oversized_payload_rejected_before_request():
    fake = _FakeTranscriptions(result=SimpleNamespace(text="never"))
    transcriber = Transcriber(
        _settings(transcribe_max_bytes=100, max_chunk_bytes=50), client=_client(fake)
    )
    with pytest.raises(PayloadTooLarge):
        await transcriber.transcribe("u/clip.flac", _payload(data=b"x" * 101))
    assert fake.kwargs is None


@pytest.mark.asyncio
async def test_sdk_errors_are_mapped_at_the_boundary():
    fake = _FakeTranscriptions(error=_status_error(openai.RateLimitError, 429))
    transcriber = Transcriber(_settings(), client=_client(fake))
    with pytest.raises(RateLimited) as info:
        await transcriber.transcribe("u/clip.flac", _payload())
    assert info.value.retryable
    assert isinstance(info.value.__cause__, openai.RateLimitError)


@pytest.mark.parametrize(
    "error,expected",
    [
        (_status_error(openai.AuthenticationError, 401), Unauthorized),
        (_status_error(openai.RateLimitError, 429), RateLimited),
        (_status_error(openai.APIStatusError, 413), PayloadTooLarge),
        (_status_error(openai.BadRequestError, 400, "Maximum content size limit exceeded: too large"), PayloadTooLarge),
        (_status_error(openai.BadRequestError, 400, "Invalid file format"), TranscriptionFailed),
        (_status_error(openai.InternalServerError, 500), TranscriptionFailed),
        (openai.APITimeoutError(request=_REQUEST), TranscriptionTimeout),
        (openai.APIConnectionError(request=_REQUEST), TranscriptionFailed),
    ],
)
def test_error_mapping(error, expected):
    mapped = map_openai_error(error)
    assert type(mapped) is expected


def test_bad_request_message_is_kept():
    mapped = map_openai_error(_status_error(openai.BadRequestError, 400, "Invalid file format"))
    assert "Invalid file format" in str(mapped)
    assert mapped.status_code == 400
