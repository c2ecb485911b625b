import io
import warnings

import pytest
from fastapi import HTTPException, UploadFile
from prometheus_client import REGISTRY
from starlette.datastructures import Headers

from src.api.services.transcript_service import TranscriptService
from src.stt_core.errors import AllChunksFailed, StorageError, TranscriptionFailed
from src.stt_core.types import RecordingClip

from tests.fakes import MemoryStore, ScriptedTranscriber


def _clips(outcome):
    return REGISTRY.get_sample_value("transcribe_clips_total", {"outcome": outcome}) or 0.0


def _chunks(status):
    return REGISTRY.get_sample_value("transcribe_chunks_total", {"status": status}) or 0.0


def _upload(data, filename="take.wav", content_type="audio/wav"):
    return UploadFile(file=io.BytesIO(data), filename=filename, headers=Headers({"content-type": content_type}))


def _service(api_settings, **kwargs):
    kwargs.setdefault("store", MemoryStore())
    kwargs.setdefault("transcriber", ScriptedTranscriber())
    return TranscriptService(api_settings, **kwargs)


@pytest.mark.asyncio
async def test_upload_uses_client_duration_and_owner_prefix(api_settings, make_audio):
    store = MemoryStore()
    service = _service(api_settings, store=store)
    payload = await service.transcribe_upload(
        _upload(make_audio(0.5)), owner="user-abc", journal_date="2024-03-09", duration_ms=4000
    )
    assert payload["transcript"] == "chunk-1"
    assert payload["local_path"].startswith("user-abc/03-09-2024--4--")
    assert payload["local_path"].endswith(".wav")
    assert payload["chunks_total"] == 1
    assert payload["chunked"] is False
    assert payload["language"] == "en"
    assert store.puts == [payload["local_path"]]


@pytest.mark.asyncio
async def test_oversized_upload_is_rejected(api_settings):
    api_settings.max_upload_bytes = 10
    service = _service(api_settings)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        with pytest.raises(HTTPException) as info:
            await service.transcribe_upload(_upload(b"x" * 11))
    assert info.value.status_code == 413
    assert not [w for w in caught if "413" in str(w.message)]


@pytest.mark.asyncio
async def test_non_audio_content_type_is_rejected(api_settings):
    store = MemoryStore()
    service = _service(api_settings, store=store)
    with pytest.raises(HTTPException) as info:
        await service.transcribe_upload(_upload(b"%PDF-1.4", filename="notes.pdf", content_type="application/pdf"))
    assert info.value.status_code == 400
    assert store.puts == []


@pytest.mark.asyncio
async def test_partial_clip_is_counted(api_settings, make_audio):
    api_settings.max_chunk_seconds = 1.0
    transcriber = ScriptedTranscriber(errors={2: [TranscriptionFailed("garbled")]})
    service = _service(api_settings, transcriber=transcriber)
    before_partial = _clips("partial")
    before_errors = _chunks("error")

    combined = await service.transcribe_clip(
        RecordingClip(data=make_audio(2.5), filename="long.wav", content_type="audio/wav")
    )

    assert combined.partial
    assert combined.text == "chunk-1\n\nchunk-3"
    assert _clips("partial") == before_partial + 1
    assert _chunks("error") == before_errors + 1


@pytest.mark.asyncio
async def test_all_failed_clip_is_counted_and_reraised(api_settings):
    transcriber = ScriptedTranscriber(errors={1: [TranscriptionFailed("down")]})
    service = _service(api_settings, transcriber=transcriber)
    before = _clips("all_failed")
    with pytest.raises(AllChunksFailed):
        await service.transcribe_clip(RecordingClip(data=b"abc", duration_seconds=1.0))
    assert _clips("all_failed") == before + 1


@pytest.mark.asyncio
async def test_signed_url_is_scoped_to_owner(api_settings):
    service = _service(api_settings)
    url = await service.signed_url("user-a/clip.mp3", owner="user-a")
    assert url == f"memory://user-a/clip.mp3?ttl={api_settings.signed_url_ttl_sec}"
    assert await service.signed_url("user-a/clip.mp3", owner="user-a", ttl_seconds=5) == (
        "memory://user-a/clip.mp3?ttl=5"
    )
    with pytest.raises(StorageError):
        await service.signed_url("user-b/clip.mp3", owner="user-a")
