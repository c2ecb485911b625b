"""Sequential per-chunk upload + transcription."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import StorageError, TranscriptionError
from .types import ChunkPayload, ChunkPlan, ChunkResult, StoredObject, TranscriptionResult

LOGGER = logging.getLogger("journalease.runner")

UploadFn = Callable[[str, ChunkPayload], Awaitable[StoredObject]]
TranscribeFn = Callable[[str, ChunkPayload], Awaitable[TranscriptionResult]]
KeyFn = Callable[[ChunkPayload], str]
ProgressFn = Callable[[int, int, str], Awaitable[None]]

MAX_RETRY_WAIT_SEC = 30.0


async def process(
    chunk_plan: ChunkPlan,
    payloads: Iterable[ChunkPayload],
    upload_fn: UploadFn,
    transcribe_fn: TranscribeFn,
    *,
    key_fn: KeyFn,
    max_attempts: int = 1,
    retry_wait: float = 1.0,
    on_progress: Optional[ProgressFn] = None,
) -> List[ChunkResult]:
    """Upload and transcribe each chunk in plan order, one at a time.

    Storage and transcription failures are recorded per chunk and never stop
    the batch. Transient transcription errors are retried against the key
    already stored, so a retry never writes a second object.
    """

    total = chunk_plan.count
    results: List[ChunkResult] = []
    stream = iter(payloads)
    for index in range(1, total + 1):
        payload = next(stream, None)
        if payload is None:
            LOGGER.warning("Chunk %s/%s missing from payload stream", index, total)
            results.append(ChunkResult.failure(index, "chunk payload was not produced"))
            continue

        key = key_fn(payload)
        if on_progress:
            await on_progress(index, total, "uploading")
        try:
            stored = await upload_fn(key, payload)
        except StorageError as exc:
            LOGGER.warning("Chunk %s/%s upload failed: %s", index, total, exc)
            results.append(ChunkResult.failure(index, f"upload failed: {exc}", key=key))
            continue

        if on_progress:
            await on_progress(index, total, "transcribing")
        try:
            transcript = await _transcribe_with_retry(
                transcribe_fn, stored.key, payload, max_attempts=max_attempts, retry_wait=retry_wait
            )
        except TranscriptionError as exc:
            LOGGER.warning("Chunk %s/%s transcription failed: %s", index, total, exc)
            results.append(ChunkResult.failure(index, f"transcription failed: {exc}", key=stored.key))
            continue

        LOGGER.info("Chunk %s/%s transcribed (%s chars)", index, total, len(transcript.text))
        results.append(
            ChunkResult.success(index, transcript.text, language=transcript.language, key=stored.key)
        )
    return results


async def _transcribe_with_retry(
    transcribe_fn: TranscribeFn,
    key: str,
    payload: ChunkPayload,
    *,
    max_attempts: int,
    retry_wait: float,
) -> TranscriptionResult:
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=retry_wait, max=MAX_RETRY_WAIT_SEC),
        retry=retry_if_exception(_is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await transcribe_fn(key, payload)
    return result


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TranscriptionError) and exc.retryable


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    wait_s = state.next_action.sleep if state.next_action else None
    LOGGER.warning("Retrying transcription (attempt=%s, wait_s=%s, error=%s)", state.attempt_number, wait_s, exc)
