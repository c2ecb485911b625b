"""API settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field, model_validator

from src.stt_core.types import PipelineLimits

MIB = 1024 * 1024


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class APISettings(BaseModel):
    app_name: str = Field(default="JournalEase Transcription API")
    version: str = Field(default="1.0.0")
    data_dir: str = Field(default=os.getenv("DATA_DIR", "data"))
    api_keys: List[str] = Field(default_factory=lambda: _split_keys())
    max_upload_bytes: int = Field(default=int(os.getenv("MAX_UPLOAD_BYTES", str(200 * MIB))))

    storage_backend: str = Field(default=os.getenv("STORAGE_BACKEND", "local"))
    supabase_url: str | None = Field(default=os.getenv("SUPABASE_URL"))
    supabase_service_role_key: str | None = Field(default=os.getenv("SUPABASE_SERVICE_ROLE_KEY"))
    supabase_audio_bucket: str = Field(
        default=(os.getenv("SUPABASE_AUDIO_BUCKET") or "audio").strip()
    )
    signing_secret: str = Field(default=os.getenv("SIGNING_SECRET", "change-me"))
    signed_url_ttl_sec: int = Field(default=int(os.getenv("SIGNED_URL_TTL_SEC", "3600")))

    openai_api_key: str | None = Field(
        default=os.getenv("OPENAI_API_KEY") or os.getenv("OPEN_AI_KEY")
    )
    openai_whisper_model: str = Field(default=os.getenv("OPENAI_WHISPER_MODEL", "whisper-1"))
    whisper_mock_transcriber: bool = Field(default=_flag("WHISPER_USE_MOCK"))
    transcribe_timeout_sec: float = Field(
        default=float(os.getenv("TRANSCRIBE_TIMEOUT_SEC", "780"))
    )
    transcribe_max_bytes: int = Field(
        default=int(os.getenv("TRANSCRIBE_MAX_BYTES", str(25 * MIB)))
    )
    transcribe_max_attempts: int = Field(default=int(os.getenv("TRANSCRIBE_MAX_ATTEMPTS", "3")))
    transcribe_retry_wait_sec: float = Field(
        default=float(os.getenv("TRANSCRIBE_RETRY_WAIT_SEC", "1.0"))
    )

    max_chunk_seconds: float = Field(default=float(os.getenv("MAX_CHUNK_SECONDS", "600")))
    max_chunk_bytes: int = Field(default=int(os.getenv("MAX_CHUNK_BYTES", str(20 * MIB))))
    chunk_format: str = Field(default=os.getenv("CHUNK_FORMAT", "flac"))

    @model_validator(mode="after")
    def _check_chunk_ceiling(self) -> "APISettings":
        if self.max_chunk_bytes >= self.transcribe_max_bytes:
            raise ValueError(
                "MAX_CHUNK_BYTES must stay below TRANSCRIBE_MAX_BYTES "
                f"({self.max_chunk_bytes} >= {self.transcribe_max_bytes})"
            )
        if self.storage_backend not in {"local", "supabase"}:
            raise ValueError(f"Unknown STORAGE_BACKEND {self.storage_backend!r}")
        return self

    def pipeline_limits(self) -> PipelineLimits:
        return PipelineLimits(
            max_chunk_seconds=self.max_chunk_seconds,
            max_chunk_bytes=self.max_chunk_bytes,
            service_max_bytes=self.transcribe_max_bytes,
            chunk_format=self.chunk_format,
            max_attempts=self.transcribe_max_attempts,
        )


def _split_keys() -> List[str]:
    raw = os.getenv("API_KEYS") or os.getenv("API_KEY") or ""
    return [key.strip() for key in raw.split(",") if key.strip()]


@lru_cache()
def get_settings() -> APISettings:
    return APISettings()
