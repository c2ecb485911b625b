"""Playback URLs for stored clips."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.stt_core import keys
from src.stt_core.errors import StorageError

from ..deps.auth import get_owner
from ..schemas import SignedUrlResponse
from ..services.object_store import LocalObjectStore
from ..services.transcript_service import TranscriptService
from ..settings import APISettings, get_settings
from .transcribe import get_service

router = APIRouter(prefix="/v1/audio", tags=["audio"])


@router.get("/url", response_model=SignedUrlResponse)
async def signed_audio_url(
    key: str = Query(..., min_length=1),
    ttl: int | None = Query(None, ge=1, le=7 * 24 * 3600),
    owner: str = Depends(get_owner),
    service: TranscriptService = Depends(get_service),
):
    expires_in = ttl or service.settings.signed_url_ttl_sec
    try:
        url = await service.signed_url(key, owner=owner, ttl_seconds=expires_in)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    return SignedUrlResponse(key=key, url=url, expires_in=expires_in)


@router.get("/local/{key:path}")
async def local_audio(
    key: str,
    expires: int = Query(...),
    sig: str = Query(...),
    settings: APISettings = Depends(get_settings),
):
    store = LocalObjectStore(Path(settings.data_dir) / "objects", settings.signing_secret)
    if settings.storage_backend != "local" or not store.verify(key, expires, sig):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired signature")
    try:
        data = await store.get(key)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    return Response(content=data, media_type=keys.guess_mime_type(key))
