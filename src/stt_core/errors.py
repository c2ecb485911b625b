"""Exception hierarchy for the chunked transcription pipeline."""

from __future__ import annotations

from typing import Sequence


class PipelineError(Exception):
    """Base error for the transcription pipeline.

    ``audio_saved`` is set by the pipeline once the original clip is in storage.
    """

    audio_saved = False


class InvalidInput(PipelineError):
    """Raised when planner or pipeline arguments are out of range."""


class DecodeError(PipelineError):
    """Raised when the original clip cannot be decoded."""


class StorageError(PipelineError):
    """Raised by object store adapters when a put/get/list/remove fails."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message if key is None else f"{key}: {message}")
        self.key = key
        self.message = message


class TranscriptionError(PipelineError):
    """Raised by the transcription adapter."""

    retryable = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class Unauthorized(TranscriptionError):
    pass


class RateLimited(TranscriptionError):
    retryable = True


class PayloadTooLarge(TranscriptionError):
    pass


class TranscriptionTimeout(TranscriptionError):
    retryable = True


class TranscriptionFailed(TranscriptionError):
    pass


class AllChunksFailed(PipelineError):
    """No chunk of a clip produced a transcript. The caller may retry."""

    retryable = True

    def __init__(self, total: int, errors: Sequence[str] = ()) -> None:
        detail = "; ".join(errors[:3])
        message = f"0 of {total} segments transcribed successfully"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.total = total
        self.errors = list(errors)
