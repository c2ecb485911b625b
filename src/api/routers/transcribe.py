"""Transcription endpoint."""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ..deps.auth import get_owner
from ..schemas import ErrorResponse, TranscribeResponse
from ..services.transcript_service import TranscriptService
from ..settings import APISettings, get_settings

router = APIRouter(prefix="/v1", tags=["transcribe"])


async def get_service(settings: APISettings = Depends(get_settings)) -> AsyncIterator[TranscriptService]:
    service = TranscriptService(settings)
    try:
        yield service
    finally:
        await service.close()


@router.post(
    "/transcribe",
    response_model=TranscribeResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def transcribe_audio(
    file: UploadFile = File(...),
    journal_date: str | None = Form(None),
    duration_ms: int | None = Form(None),
    owner: str = Depends(get_owner),
    service: TranscriptService = Depends(get_service),
):
    record = await service.transcribe_upload(
        file, owner=owner, journal_date=journal_date, duration_ms=duration_ms
    )
    return TranscribeResponse(**record)
