"""FastAPI application factory."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from src.stt_core.errors import AllChunksFailed, DecodeError, InvalidInput, PipelineError, StorageError

from .deps.auth import get_api_key
from .metrics import instrument_app, router as metrics_router
from .routers import audio, transcribe
from .schemas import ErrorResponse, HealthResponse
from .settings import APISettings, get_settings

LOGGER = logging.getLogger("journalease.api")


def _error(status_code: int, message: str, exc: Exception, *, audio_saved: bool, retryable: bool = False) -> JSONResponse:
    body = ErrorResponse(
        message=message,
        error=type(exc).__name__,
        audio_saved=audio_saved,
        retryable=retryable,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidInput)
    async def _invalid_input(_: Request, exc: InvalidInput) -> JSONResponse:
        return _error(400, str(exc), exc, audio_saved=exc.audio_saved)

    @app.exception_handler(DecodeError)
    async def _decode_error(_: Request, exc: DecodeError) -> JSONResponse:
        return _error(422, f"Audio could not be decoded: {exc}", exc, audio_saved=exc.audio_saved)

    @app.exception_handler(AllChunksFailed)
    async def _all_failed(_: Request, exc: AllChunksFailed) -> JSONResponse:
        return _error(502, str(exc), exc, audio_saved=exc.audio_saved, retryable=True)

    @app.exception_handler(StorageError)
    async def _storage_error(_: Request, exc: StorageError) -> JSONResponse:
        LOGGER.error("Storage failure: %s", exc)
        return _error(500, "Failed to upload audio to storage", exc, audio_saved=exc.audio_saved, retryable=True)

    @app.exception_handler(PipelineError)
    async def _pipeline_error(_: Request, exc: PipelineError) -> JSONResponse:
        LOGGER.error("Pipeline failure: %s", exc)
        return _error(500, str(exc), exc, audio_saved=exc.audio_saved)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.version)
    register_error_handlers(app)
    instrument_app(app)
    app.include_router(transcribe.router)
    app.include_router(audio.router)
    app.include_router(metrics_router)

    @app.get("/welcome")
    async def welcome() -> dict:
        return {"app": settings.app_name, "version": settings.version, "docs": "/docs"}

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz(
        _: str = Depends(get_api_key),
        current: APISettings = Depends(get_settings),
    ) -> HealthResponse:
        storage = _storage_status(current)
        if current.whisper_mock_transcriber:
            transcriber = "mock"
        else:
            transcriber = "ok" if current.openai_api_key else "missing_key"
        return HealthResponse(
            ok=storage == "ok" and transcriber != "missing_key",
            storage=storage,
            transcriber=transcriber,
            timestamp=datetime.now(timezone.utc),
        )

    return app


def _storage_status(settings: APISettings) -> str:
    if settings.storage_backend == "supabase":
        return "ok" if settings.supabase_url and settings.supabase_service_role_key else "missing_config"
    root = Path(settings.data_dir)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError:
        return "unwritable"
    return "ok" if os.access(root, os.W_OK) else "unwritable"
