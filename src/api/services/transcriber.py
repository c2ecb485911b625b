"""Hosted speech-to-text client (OpenAI) + mock fallback."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Optional

import openai
from openai import AsyncOpenAI

from src.stt_core.errors import (
    PayloadTooLarge,
    RateLimited,
    TranscriptionError,
    TranscriptionFailed,
    TranscriptionTimeout,
    Unauthorized,
)
from src.stt_core.types import ChunkPayload, TranscriptionResult

from ..settings import APISettings

LOGGER = logging.getLogger("journalease.transcriber")


class Transcriber:
    """Send one audio payload to the transcription service and map its errors.

    The SDK's own retries are disabled; transient failures are retried by the
    chunk runner so they are counted per chunk.
    """

    def __init__(self, settings: APISettings, *, client: Optional[AsyncOpenAI] = None) -> None:
        self.settings = settings
        self.model = settings.openai_whisper_model
        self.max_bytes = settings.transcribe_max_bytes
        self._mock = settings.whisper_mock_transcriber and client is None
        self._client: Optional[AsyncOpenAI] = client
        if self._mock:
            LOGGER.warning(
                "Transcriber mock mode enabled (set WHISPER_USE_MOCK=0 and "
                "OPENAI_API_KEY to enable real transcription)."
            )
        elif self._client is None:
            api_key = (settings.openai_api_key or "").strip()
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY is missing and WHISPER_USE_MOCK is not enabled")
            self._client = AsyncOpenAI(
                api_key=api_key,
                timeout=settings.transcribe_timeout_sec,
                max_retries=0,
            )

    @property
    def mock(self) -> bool:
        return self._mock

    async def transcribe(self, stored_key: str, payload: ChunkPayload) -> TranscriptionResult:
        if payload.size > self.max_bytes:
            raise PayloadTooLarge(
                f"Audio chunk is too large ({payload.size / 1024 / 1024:.2f}MB). "
                f"Maximum size is {self.max_bytes / 1024 / 1024:.0f}MB."
            )
        name = PurePosixPath(stored_key).name or f"chunk.{payload.extension}"
        if self._mock:
            text = f"[mock transcript for {name} ({payload.duration_seconds:.1f}s)]"
            return TranscriptionResult(text=text, language="auto")

        assert self._client is not None
        LOGGER.info(
            "Sending %s (%.2fMB, %.0fs) to %s",
            name,
            payload.size / 1024 / 1024,
            payload.duration_seconds,
            self.model,
        )
        try:
            transcript = await self._client.audio.transcriptions.create(
                model=self.model,
                file=(name, payload.data, payload.content_type),
                response_format=self._response_format(),
            )
        except openai.APIError as exc:
            raise map_openai_error(exc) from exc
        text = (getattr(transcript, "text", None) or "").strip()
        language = getattr(transcript, "language", None) or None
        return TranscriptionResult(text=text, language=language)

    def _response_format(self) -> str:
        # Only the whisper models return language in verbose_json.
        return "verbose_json" if self.model.startswith("whisper") else "json"

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


def map_openai_error(exc: openai.APIError) -> TranscriptionError:
    """Translate SDK exceptions into the pipeline's transcription errors."""

    if isinstance(exc, openai.APITimeoutError):
        return TranscriptionTimeout(
            "Request timed out. The audio may be too long or the service is slow; try again."
        )
    if isinstance(exc, openai.APIConnectionError):
        return TranscriptionFailed(f"Network error: could not reach the transcription service ({exc})")
    status_code = getattr(exc, "status_code", None)
    detail = _detail(exc)
    if status_code in (401, 403):
        return Unauthorized(
            "Transcription API key is invalid or expired.", status_code=status_code
        )
    if status_code == 429:
        return RateLimited(
            "Transcription rate limit exceeded. Try again later.", status_code=status_code
        )
    if status_code == 413:
        return PayloadTooLarge("Audio file is too large for transcription.", status_code=status_code)
    if status_code == 400:
        if "too large" in detail.lower():
            return PayloadTooLarge(detail, status_code=status_code)
        return TranscriptionFailed(f"Invalid request: {detail}", status_code=status_code)
    return TranscriptionFailed(detail or "Transcription failed", status_code=status_code)


def _detail(exc: openai.APIError) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return str(getattr(exc, "message", None) or exc)
