"""Duration/size based chunk planning."""

from __future__ import annotations

import math

from .errors import InvalidInput
from .types import ChunkInterval, ChunkPlan


def chunk_count(
    total_duration_seconds: float,
    total_bytes: int,
    max_chunk_duration_seconds: float,
    max_chunk_bytes: int,
) -> int:
    by_duration = math.ceil(total_duration_seconds / max_chunk_duration_seconds)
    by_bytes = math.ceil(total_bytes / max_chunk_bytes)
    return max(1, by_duration, by_bytes)


def plan(
    total_duration_seconds: float,
    total_bytes: int,
    max_chunk_duration_seconds: float,
    max_chunk_bytes: int,
) -> ChunkPlan:
    """Split ``[0, total_duration_seconds)`` into equal intervals that fit both ceilings.

    A single-interval plan means the clip can be sent as-is.
    """

    _check_positive("total_duration_seconds", total_duration_seconds)
    _check_positive("max_chunk_duration_seconds", max_chunk_duration_seconds)
    _check_positive("max_chunk_bytes", max_chunk_bytes)
    if not _is_finite(total_bytes) or total_bytes < 0:
        raise InvalidInput(f"total_bytes must be >= 0, got {total_bytes!r}")

    count = chunk_count(
        total_duration_seconds, total_bytes, max_chunk_duration_seconds, max_chunk_bytes
    )
    if count == 1:
        intervals = (ChunkInterval(0.0, float(total_duration_seconds)),)
        return ChunkPlan(float(total_duration_seconds), int(total_bytes), intervals)

    width = total_duration_seconds / count
    bounds = [idx * width for idx in range(count)] + [float(total_duration_seconds)]
    intervals = tuple(ChunkInterval(bounds[idx], bounds[idx + 1]) for idx in range(count))
    return ChunkPlan(float(total_duration_seconds), int(total_bytes), intervals)


def _check_positive(name: str, value: float) -> None:
    if not _is_finite(value) or value <= 0:
        raise InvalidInput(f"{name} must be > 0, got {value!r}")


def _is_finite(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
