"""Plan → encode → upload/transcribe → combine for one recording."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import List, Optional, Protocol

from . import encoder, keys, planner, runner
from .combiner import combine
from .errors import PipelineError
from .types import (
    ChunkPayload,
    ChunkPlan,
    ChunkResult,
    CombinedTranscript,
    PipelineLimits,
    RecordingClip,
    StoredObject,
    TranscriptionResult,
)

LOGGER = logging.getLogger("journalease.pipeline")


class ObjectStorePort(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> StoredObject: ...


class TranscriberPort(Protocol):
    async def transcribe(self, stored_key: str, payload: ChunkPayload) -> TranscriptionResult: ...


class ClipRun:
    """State for one transcription attempt of a clip.

    ``results`` is kept on the instance so callers can inspect per-chunk
    outcomes even when combining raises ``AllChunksFailed``.
    """

    def __init__(
        self,
        clip: RecordingClip,
        *,
        store: ObjectStorePort,
        transcriber: TranscriberPort,
        limits: PipelineLimits,
        journal_date: date | str | None = None,
        owner: str | None = None,
        clock: keys.Clock = time.time_ns,
        on_progress: Optional[runner.ProgressFn] = None,
        retry_wait: float = 1.0,
    ) -> None:
        self.clip = clip
        self.store = store
        self.transcriber = transcriber
        self.limits = limits.validate()
        self.journal_date = keys.normalize_journal_date(journal_date)
        self.owner = owner
        self.clock = clock
        self.on_progress = on_progress
        self.retry_wait = retry_wait
        self.original: StoredObject | None = None
        self.plan: ChunkPlan | None = None
        self.results: List[ChunkResult] = []

    async def run(self) -> CombinedTranscript:
        try:
            return await self._run()
        except PipelineError as exc:
            exc.audio_saved = self.original is not None
            raise

    async def _run(self) -> CombinedTranscript:
        duration = self.clip.duration_seconds
        if not duration or duration <= 0:
            duration = encoder.probe_duration(self.clip.data)
        self.plan = planner.plan(
            duration, self.clip.size, self.limits.max_chunk_seconds, self.limits.max_chunk_bytes
        )
        LOGGER.info(
            "Planned %s chunk(s) for %.1fs / %s bytes (%s)",
            self.plan.count,
            duration,
            self.clip.size,
            self.clip.filename,
        )

        original_key = keys.clip_key(
            self.journal_date, duration, self.clip.extension, owner=self.owner, clock=self.clock
        )
        self.original = await self.store.put(original_key, self.clip.data, self.clip.content_type)
        LOGGER.info("Stored original clip as %s", self.original.key)

        if self.plan.is_single:
            return await self._run_single()
        return await self._run_chunked()

    async def _run_single(self) -> CombinedTranscript:
        assert self.plan is not None and self.original is not None
        stored = self.original
        payload = ChunkPayload(
            index=1,
            total=1,
            data=self.clip.data,
            interval=self.plan.intervals[0],
            content_type=self.clip.content_type,
            extension=self.clip.extension,
        )

        async def _already_stored(_key: str, _payload: ChunkPayload) -> StoredObject:
            return stored

        self.results = await runner.process(
            self.plan,
            [payload],
            _already_stored,
            self.transcriber.transcribe,
            key_fn=lambda _payload: stored.key,
            max_attempts=self.limits.max_attempts,
            retry_wait=self.retry_wait,
            on_progress=self.on_progress,
        )
        return combine(self.results, original_key=stored.key)

    async def _run_chunked(self) -> CombinedTranscript:
        assert self.original is not None
        audio = encoder.decode(self.clip.data)
        estimated = encoder.estimate_encoded_bytes(
            audio.duration, audio.sample_rate, audio.channels, self.limits.chunk_format
        )
        self.plan = planner.plan(
            audio.duration,
            max(self.clip.size, estimated),
            self.limits.max_chunk_seconds,
            self.limits.max_chunk_bytes,
        )
        if self.plan.is_single:
            LOGGER.info("Decoded clip fits in one chunk; sending the original")
            return await self._run_single()
        LOGGER.info("Encoding %s chunks as %s", self.plan.count, self.limits.chunk_format)

        async def _upload(key: str, payload: ChunkPayload) -> StoredObject:
            return await self.store.put(key, payload.data, payload.content_type)

        self.results = await runner.process(
            self.plan,
            encoder.iter_payloads(audio, self.plan, self.limits.chunk_format),
            _upload,
            self.transcriber.transcribe,
            key_fn=self._chunk_key,
            max_attempts=self.limits.max_attempts,
            retry_wait=self.retry_wait,
            on_progress=self.on_progress,
        )
        return combine(self.results, original_key=self.original.key)

    def _chunk_key(self, payload: ChunkPayload) -> str:
        return keys.chunk_key(
            self.journal_date,
            payload.index,
            payload.total,
            payload.extension,
            owner=self.owner,
            clock=self.clock,
        )


async def transcribe_clip(
    clip: RecordingClip,
    *,
    store: ObjectStorePort,
    transcriber: TranscriberPort,
    limits: PipelineLimits | None = None,
    journal_date: date | str | None = None,
    owner: str | None = None,
    clock: keys.Clock = time.time_ns,
    on_progress: Optional[runner.ProgressFn] = None,
    retry_wait: float = 1.0,
) -> CombinedTranscript:
    run = ClipRun(
        clip,
        store=store,
        transcriber=transcriber,
        limits=limits or PipelineLimits(),
        journal_date=journal_date,
        owner=owner,
        clock=clock,
        on_progress=on_progress,
        retry_wait=retry_wait,
    )
    return await run.run()
