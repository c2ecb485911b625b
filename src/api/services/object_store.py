"""Object store adapters: local disk and Supabase Storage."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import quote, urlencode

import httpx

from src.stt_core.errors import StorageError
from src.stt_core.types import StoredObject

from ..settings import APISettings

LOGGER = logging.getLogger("journalease.storage")


class ObjectStore(ABC):
    """Flat key/value blob storage. Every failure surfaces as ``StorageError``."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> StoredObject: ...

    @abstractmethod
    async def get(self, key: str) -> bytes: ...

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]: ...

    @abstractmethod
    async def remove(self, keys: Iterable[str]) -> None: ...

    @abstractmethod
    async def signed_url(self, key: str, ttl_seconds: int) -> str: ...

    async def close(self) -> None:
        return None


def validate_key(key: str) -> str:
    cleaned = (key or "").strip()
    if not cleaned or cleaned.startswith("/") or "\\" in cleaned:
        raise StorageError("invalid object key", key=key)
    if any(part in {"", ".", ".."} for part in PurePosixPath(cleaned).parts) or cleaned.endswith("/"):
        raise StorageError("invalid object key", key=key)
    return cleaned


class LocalObjectStore(ObjectStore):
    """Objects stored as files under ``{DATA_DIR}/objects``.

    Signed URLs point at ``/v1/audio/local/<key>`` and carry an HMAC over the
    key and expiry so the API can serve them without a session.
    """

    def __init__(self, base_dir: Path, secret: str, *, url_prefix: str = "/v1/audio/local") -> None:
        self.base_dir = Path(base_dir)
        self.secret = secret.encode("utf-8")
        self.url_prefix = url_prefix.rstrip("/")

    def path_for(self, key: str) -> Path:
        return self.base_dir / validate_key(key)

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> StoredObject:
        path = self.path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(str(exc), key=key) from exc
        return StoredObject(key=key, size=len(data))

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise StorageError("object not found", key=key) from exc
        except OSError as exc:
            raise StorageError(str(exc), key=key) from exc

    async def list(self, prefix: str = "") -> List[str]:
        def _scan() -> List[str]:
            if not self.base_dir.exists():
                return []
            return [
                path.relative_to(self.base_dir).as_posix()
                for path in self.base_dir.rglob("*")
                if path.is_file()
            ]

        try:
            keys = await asyncio.to_thread(_scan)
        except OSError as exc:
            raise StorageError(str(exc), key=prefix or None) from exc
        return sorted(key for key in keys if key.startswith(prefix))

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            path = self.path_for(key)
            try:
                await asyncio.to_thread(path.unlink, missing_ok=True)
            except OSError as exc:
                raise StorageError(str(exc), key=key) from exc

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        path = self.path_for(key)
        if not await asyncio.to_thread(path.exists):
            raise StorageError("object not found", key=key)
        expires = int(time.time()) + int(ttl_seconds)
        query = urlencode({"expires": expires, "sig": self.sign(key, expires)})
        return f"{self.url_prefix}/{quote(key, safe='/')}?{query}"

    def sign(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    def verify(self, key: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self.sign(key, expires), signature)


class SupabaseObjectStore(ObjectStore):
    """Supabase Storage REST client (service role, bypasses RLS)."""

    def __init__(
        self,
        url: str,
        service_role_key: str,
        bucket: str = "audio",
        *,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not url or not service_role_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for Supabase storage")
        self.base = url.strip().rstrip("/") + "/storage/v1"
        self.bucket = bucket.strip()
        self._key = service_role_key.strip()
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, **extra: str) -> dict:
        headers = {"Authorization": f"Bearer {self._key}", "apikey": self._key}
        headers.update(extra)
        return headers

    def _object_url(self, key: str, kind: str = "object") -> str:
        return f"{self.base}/{kind}/{self.bucket}/{quote(validate_key(key), safe='/')}"

    async def _request(self, method: str, url: str, *, key: str | None = None, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError(f"storage request failed: {exc}", key=key) from exc
        if resp.status_code >= 400:
            raise StorageError(f"storage error {resp.status_code}: {_error_message(resp)}", key=key)
        return resp

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> StoredObject:
        await self._request(
            "POST",
            self._object_url(key),
            key=key,
            content=data,
            headers=self._headers(**{"Content-Type": content_type, "x-upsert": "true"}),
        )
        LOGGER.debug("Uploaded %s bytes to %s/%s", len(data), self.bucket, key)
        return StoredObject(key=key, size=len(data))

    async def get(self, key: str) -> bytes:
        resp = await self._request("GET", self._object_url(key), key=key, headers=self._headers())
        return resp.content

    async def list(self, prefix: str = "") -> List[str]:
        folder, _, search = prefix.rpartition("/")
        resp = await self._request(
            "POST",
            f"{self.base}/object/list/{self.bucket}",
            json={"prefix": folder, "search": search, "limit": 1000, "offset": 0},
            headers=self._headers(),
        )
        names = [item.get("name") for item in resp.json() if isinstance(item, dict)]
        keys = [f"{folder}/{name}" if folder else name for name in names if name]
        return sorted(key for key in keys if key.startswith(prefix))

    async def remove(self, keys: Iterable[str]) -> None:
        prefixes = [validate_key(key) for key in keys]
        if not prefixes:
            return
        await self._request(
            "DELETE",
            f"{self.base}/object/{self.bucket}",
            json={"prefixes": prefixes},
            headers=self._headers(),
        )

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        resp = await self._request(
            "POST",
            self._object_url(key, kind="object/sign"),
            key=key,
            json={"expiresIn": int(ttl_seconds)},
            headers=self._headers(),
        )
        try:
            signed = resp.json().get("signedURL") or resp.json().get("signedUrl")
        except ValueError as exc:
            raise StorageError(f"invalid sign response: {exc}", key=key) from exc
        if not signed:
            raise StorageError("sign response missing signedURL", key=key)
        if signed.startswith("http"):
            return signed
        return f"{self.base}{signed}"

    async def close(self) -> None:
        await self._client.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]


def build_object_store(settings: APISettings) -> ObjectStore:
    if settings.storage_backend == "supabase":
        return SupabaseObjectStore(
            settings.supabase_url or "",
            settings.supabase_service_role_key or "",
            settings.supabase_audio_bucket,
        )
    return LocalObjectStore(Path(settings.data_dir) / "objects", settings.signing_secret)
