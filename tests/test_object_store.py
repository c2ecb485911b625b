import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from src.api.services.object_store import LocalObjectStore, SupabaseObjectStore
from src.stt_core.errors import StorageError


@pytest.mark.asyncio
async def test_local_store_roundtrip(tmp_path):
    store = LocalObjectStore(tmp_path / "objects", "secret")
    stored = await store.put("user-1/01-01-2024--5--1.mp3", b"abc", "audio/mpeg")
    assert stored.key == "user-1/01-01-2024--5--1.mp3"
    assert stored.size == 3
    assert await store.get(stored.key) == b"abc"
    await store.put("user-2/other.mp3", b"x")
    assert await store.list("user-1/") == ["user-1/01-01-2024--5--1.mp3"]

    await store.remove([stored.key])
    assert await store.list("user-1/") == []
    with pytest.raises(StorageError):
        await store.get(stored.key)


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["", "/abs.mp3", "../escape.mp3", "a/../../b", "dir/"])
async def test_local_store_rejects_unsafe_keys(tmp_path, key):
    store = LocalObjectStore(tmp_path, "secret")
    with pytest.raises(StorageError):
        await store.put(key, b"x")


@pytest.mark.asyncio
async def test_local_signed_url_verifies(tmp_path):
    store = LocalObjectStore(tmp_path, "secret")
    await store.put("u/clip.mp3", b"abc")
    url = urlparse(await store.signed_url("u/clip.mp3", 60))
    params = parse_qs(url.query)
    assert url.path == "/v1/audio/local/u/clip.mp3"
    expires = int(params["expires"][0])
    assert store.verify("u/clip.mp3", expires, params["sig"][0])
    assert not store.verify("u/other.mp3", expires, params["sig"][0])
    assert not store.verify("u/clip.mp3", 1, store.sign("u/clip.mp3", 1))
    with pytest.raises(StorageError):
        await store.signed_url("u/missing.mp3", 60)


def _supabase(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseObjectStore("https://proj.supabase.co/", "service-key", "audio", client=client)


@pytest.mark.asyncio
async def test_supabase_put_uses_upsert_and_service_role():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = request.content
        return httpx.Response(200, json={"Key": "audio/u/clip 1.mp3"})

    store = _supabase(handler)
    stored = await store.put("u/clip 1.mp3", b"data", "audio/mpeg")
    assert stored.key == "u/clip 1.mp3"
    assert seen["method"] == "POST"
    assert seen["url"] == "https://proj.supabase.co/storage/v1/object/audio/u/clip%201.mp3"
    assert seen["headers"]["authorization"] == "Bearer service-key"
    assert seen["headers"]["x-upsert"] == "true"
    assert seen["headers"]["content-type"] == "audio/mpeg"
    assert seen["body"] == b"data"


@pytest.mark.asyncio
async def test_supabase_errors_become_storage_errors():
    def handler(request):
        return httpx.Response(400, json={"statusCode": "400", "message": "Bucket not found"})

    store = _supabase(handler)
    with pytest.raises(StorageError) as info:
        await store.put("u/clip.mp3", b"data")
    assert "Bucket not found" in str(info.value)


@pytest.mark.asyncio
async def test_supabase_network_error_becomes_storage_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(StorageError):
        await _supabase(handler).get("u/clip.mp3")


@pytest.mark.asyncio
async def test_supabase_signed_url_list_and_remove():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path, request.content))
        if request.url.path.startswith("/storage/v1/object/sign/"):
            assert json.loads(request.content) == {"expiresIn": 120}
            return httpx.Response(200, json={"signedURL": "/object/sign/audio/u/clip.mp3?token=t"})
        if request.url.path == "/storage/v1/object/list/audio":
            body = json.loads(request.content)
            assert body["prefix"] == "u"
            return httpx.Response(200, json=[{"name": "clip.mp3"}, {"name": "zzz.mp3"}])
        if request.method == "DELETE":
            return httpx.Response(200, json=[])
        raise AssertionError(f"Unexpected request {request.method} {request.url}")

    store = _supabase(handler)
    url = await store.signed_url("u/clip.mp3", 120)
    assert url == "https://proj.supabase.co/storage/v1/object/sign/audio/u/clip.mp3?token=t"
    assert await store.list("u/cl") == ["u/clip.mp3"]
    await store.remove(["u/clip.mp3"])
    assert json.loads(calls[-1][2]) == {"prefixes": ["u/clip.mp3"]}
    await store.close()


def test_supabase_requires_credentials():
    with pytest.raises(RuntimeError):
        SupabaseObjectStore("", "", "audio")


@pytest.mark.asyncio
async def test_local_list_and_remove_run_off_the_event_loop(tmp_path, monkeypatch):
    from src.api.services import object_store

    offloaded = []
    real_to_thread = object_store.asyncio.to_thread

    async def _recording_to_thread(func, /, *args, **kwargs):
        offloaded.append(getattr(func, "__name__", repr(func)))
        return await real_to_thread(func, *args, **kwargs)

    store = LocalObjectStore(tmp_path, "secret")
    await store.put("u/clip.mp3", b"abc")
    monkeypatch.setattr(object_store.asyncio, "to_thread", _recording_to_thread)

    assert await store.list("u/") == ["u/clip.mp3"]
    await store.remove(["u/clip.mp3"])

    assert offloaded == ["_scan", "unlink"]
    assert await store.list() == []
