"""Dataclasses shared across the chunked transcription pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .errors import InvalidInput


@dataclass(slots=True)
class RecordingClip:
    """Full audio captured or uploaded by the user."""

    data: bytes
    filename: str = "audio.mp3"
    content_type: str = "audio/mpeg"
    duration_seconds: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        suffix = self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""
        return suffix or "mp3"


@dataclass(frozen=True, slots=True)
class ChunkInterval:
    """Half-open time range ``[start, end)`` in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True, slots=True)
class ChunkPlan:
    total_duration: float
    total_bytes: int
    intervals: Tuple[ChunkInterval, ...]

    @property
    def count(self) -> int:
        return len(self.intervals)

    @property
    def is_single(self) -> bool:
        """A single-interval plan means no chunking (and no re-encoding)."""
        return len(self.intervals) == 1


@dataclass(slots=True)
class DecodedAudio:
    """Decoded PCM for a whole clip, shaped ``(frames, channels)``."""

    samples: np.ndarray
    sample_rate: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1]) if self.samples.ndim > 1 else 1

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate)


@dataclass(slots=True)
class ChunkPayload:
    """Independently decodable audio for one planned interval (1-based index)."""

    index: int
    total: int
    data: bytes
    interval: ChunkInterval
    content_type: str = "audio/flac"
    extension: str = "flac"

    @property
    def duration_seconds(self) -> float:
        return self.interval.duration

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    size: int = 0


@dataclass(frozen=True, slots=True)
class TranscriptionResult:
    text: str
    language: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ChunkResult:
    """Outcome of one chunk: ``text`` on success, ``error`` on failure."""

    index: int
    text: Optional[str] = None
    error: Optional[str] = None
    language: Optional[str] = None
    key: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None

    @classmethod
    def success(cls, index: int, text: str, *, language: str | None = None, key: str | None = None) -> "ChunkResult":
        return cls(index=index, text=text, language=language, key=key)

    @classmethod
    def failure(cls, index: int, error: str, *, key: str | None = None) -> "ChunkResult":
        return cls(index=index, error=error, key=key)


@dataclass(frozen=True, slots=True)
class CombinedTranscript:
    text: str
    total: int
    succeeded: int
    original_key: Optional[str] = None
    language: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return 0 < self.succeeded < self.total

    @property
    def chunked(self) -> bool:
        return self.total > 1

    @property
    def summary(self) -> str:
        return f"{self.succeeded} of {self.total} segments transcribed successfully"


@dataclass(frozen=True, slots=True)
class PipelineLimits:
    """Chunking ceilings. ``max_chunk_bytes`` must stay under the service ceiling."""

    max_chunk_seconds: float = 600.0
    max_chunk_bytes: int = 20 * 1024 * 1024
    service_max_bytes: int = 25 * 1024 * 1024
    chunk_format: str = "flac"
    max_attempts: int = 3

    def validate(self) -> "PipelineLimits":
        if self.max_chunk_seconds <= 0 or self.max_chunk_bytes <= 0:
            raise InvalidInput("chunk ceilings must be positive")
        if self.max_chunk_bytes >= self.service_max_bytes:
            raise InvalidInput(
                f"max_chunk_bytes ({self.max_chunk_bytes}) must be below the "
                f"transcription service ceiling ({self.service_max_bytes})"
            )
        if self.max_attempts < 1:
            raise InvalidInput("max_attempts must be at least 1")
        return self
