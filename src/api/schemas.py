"""Pydantic schemas for API contracts."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TranscribeResponse(BaseModel):
    status: str = "success"
    transcript: str
    local_path: str | None = None
    file_size: int = 0
    language: str | None = None
    confidence: float | None = None
    chunked: bool = False
    chunks_processed: int = 1
    chunks_total: int = 1
    partial: bool = False
    message: str | None = None


class ErrorResponse(BaseModel):
    status: str = "error"
    message: str
    error: str | None = None
    audio_saved: bool = False
    retryable: bool = False


class SignedUrlResponse(BaseModel):
    key: str
    url: str
    expires_in: int = Field(ge=1)


class HealthResponse(BaseModel):
    ok: bool
    storage: str
    transcriber: str
    timestamp: datetime
