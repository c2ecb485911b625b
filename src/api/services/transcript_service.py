"""Store uploaded clips and turn them into combined transcripts."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from fastapi import HTTPException, UploadFile, status

from src.stt_core import keys
from src.stt_core.errors import AllChunksFailed, PipelineError, StorageError
from src.stt_core.pipeline import ClipRun
from src.stt_core.types import CombinedTranscript, RecordingClip

from ..metrics import CLIP_COUNTER, PIPELINE_DURATION, record_chunks
from ..settings import APISettings
from .object_store import ObjectStore, build_object_store
from .transcriber import Transcriber

LOGGER = logging.getLogger("journalease.service")


class TranscriptService:
    """Run the chunked transcription pipeline for one uploaded recording."""

    def __init__(
        self,
        settings: APISettings,
        *,
        store: Optional[ObjectStore] = None,
        transcriber: Optional[Transcriber] = None,
    ) -> None:
        self.settings = settings
        self.store = store or build_object_store(settings)
        self.transcriber = transcriber or Transcriber(settings)
        self.limits = settings.pipeline_limits()

    async def transcribe_upload(
        self,
        file: UploadFile,
        *,
        owner: str | None = None,
        journal_date: str | None = None,
        duration_ms: int | None = None,
    ) -> Dict[str, Any]:
        """Handle a single recording upload."""

        data = await file.read()
        if not data:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Audio file is required")
        if len(data) > self.settings.max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size is {self.settings.max_upload_bytes // (1024 * 1024)}MB.",
            )
        filename = file.filename or "audio.mp3"
        content_type = keys.accepted_mime_type(file.content_type, filename)
        if content_type is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid file type. Only audio files are allowed.",
            )
        clip = RecordingClip(
            data=data,
            filename=filename,
            content_type=content_type,
            duration_seconds=(duration_ms / 1000.0) if duration_ms and duration_ms > 0 else None,
        )
        combined = await self.transcribe_clip(clip, owner=owner, journal_date=journal_date)
        return {
            "transcript": combined.text,
            "local_path": combined.original_key,
            "file_size": clip.size,
            "language": combined.language,
            "confidence": None,
            "chunked": combined.chunked,
            "chunks_processed": combined.succeeded,
            "chunks_total": combined.total,
            "partial": combined.partial,
            "message": combined.summary,
        }

    async def transcribe_clip(
        self,
        clip: RecordingClip,
        *,
        owner: str | None = None,
        journal_date: str | None = None,
    ) -> CombinedTranscript:
        run = ClipRun(
            clip,
            store=self.store,
            transcriber=self.transcriber,
            limits=self.limits,
            journal_date=journal_date,
            owner=owner,
            on_progress=self._log_progress,
            retry_wait=self.settings.transcribe_retry_wait_sec,
        )
        start_time = time.perf_counter()
        try:
            combined = await run.run()
        except AllChunksFailed:
            CLIP_COUNTER.labels(outcome="all_failed").inc()
            LOGGER.error("All %s chunk(s) failed for %s", len(run.results), clip.filename)
            raise
        except PipelineError:
            CLIP_COUNTER.labels(outcome="error").inc()
            raise
        finally:
            record_chunks(run.results)
            PIPELINE_DURATION.observe(time.perf_counter() - start_time)

        CLIP_COUNTER.labels(outcome="partial" if combined.partial else "done").inc()
        if combined.partial:
            LOGGER.warning("%s for %s", combined.summary, combined.original_key)
        return combined

    async def signed_url(self, key: str, *, owner: str | None, ttl_seconds: int | None = None) -> str:
        if owner and not key.startswith(f"{owner}/"):
            raise StorageError("object not found", key=key)
        ttl = ttl_seconds or self.settings.signed_url_ttl_sec
        return await self.store.signed_url(key, ttl)

    async def close(self) -> None:
        await self.store.close()
        await self.transcriber.close()

    async def _log_progress(self, index: int, total: int, stage: str) -> None:
        LOGGER.info("Chunk %s of %s: %s", index, total, stage)
