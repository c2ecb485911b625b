"""Merge per-chunk transcripts into one transcript for the clip."""

from __future__ import annotations

from typing import Iterable, Optional

from .errors import AllChunksFailed
from .types import ChunkResult, CombinedTranscript

PARAGRAPH_BREAK = "\n\n"


def combine(results: Iterable[ChunkResult], *, original_key: Optional[str] = None) -> CombinedTranscript:
    """Join successful chunk texts in index order.

    Raises ``AllChunksFailed`` when nothing succeeded. A partial result is a
    normal return value with ``succeeded < total``.
    """

    ordered = sorted(results, key=lambda item: item.index)
    successes = [item for item in ordered if item.ok]
    errors = [f"chunk {item.index}: {item.error}" for item in ordered if not item.ok]
    if not successes:
        raise AllChunksFailed(len(ordered), errors)

    parts = [part for part in (item.text.strip() for item in successes if item.text) if part]
    text = PARAGRAPH_BREAK.join(parts)
    language = next((item.language for item in successes if item.language), None)
    return CombinedTranscript(
        text=text,
        total=len(ordered),
        succeeded=len(successes),
        original_key=original_key,
        language=language,
        errors=errors,
    )
