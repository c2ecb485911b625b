"""Object store key naming for clips and their chunks."""

from __future__ import annotations

import re
import time
from datetime import date, datetime, timezone
from pathlib import PurePosixPath
from typing import Callable, Optional

Clock = Callable[[], int]

_SAFE = re.compile(r"[^A-Za-z0-9._-]+")
_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MIME_TYPES = {
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/m4a",
    "flac": "audio/flac",
    "ogg": "audio/ogg",
}

# Aliases browsers and mobile recorders send for the same containers.
ALLOWED_MIME_TYPES = frozenset(MIME_TYPES.values()) | {
    "audio/mp3",
    "audio/x-wav",
    "audio/wave",
    "audio/x-m4a",
    "audio/mp4",
    "audio/x-flac",
}


def normalize_journal_date(value: str | date | None, today: Optional[date] = None) -> date:
    """Coerce a client supplied journal date, falling back to today (UTC)."""

    fallback = today or datetime.now(timezone.utc).date()
    if value is None:
        return fallback
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = value.strip()
    if not raw:
        return fallback
    try:
        if _ISO_DAY.match(raw):
            return date.fromisoformat(raw)
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return fallback
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def timestamp_suffix(clock: Clock = time.time_ns) -> str:
    return f"{clock() % 1_000_000_000:09d}"


def clip_key(
    journal_date: date,
    duration_seconds: float,
    extension: str,
    *,
    owner: str | None = None,
    clock: Clock = time.time_ns,
) -> str:
    name = f"{_day(journal_date)}--{int(round(duration_seconds))}--{timestamp_suffix(clock)}.{_clean(extension)}"
    return _join(owner, name)


def chunk_key(
    journal_date: date,
    index: int,
    total: int,
    extension: str,
    *,
    owner: str | None = None,
    clock: Clock = time.time_ns,
) -> str:
    name = f"{_day(journal_date)}--chunk{index:02d}of{total:02d}--{timestamp_suffix(clock)}.{_clean(extension)}"
    return _join(owner, name)


def guess_mime_type(filename: str | None) -> str:
    suffix = PurePosixPath(filename or "").suffix.lstrip(".").lower()
    return MIME_TYPES.get(suffix, "audio/mpeg")


def accepted_mime_type(content_type: str | None, filename: str | None = None) -> str | None:
    """Return the normalized audio mime type, or None when the upload is not audio.

    Generic or missing content types fall back to the filename extension.
    """

    base = (content_type or "").split(";", 1)[0].strip().lower()
    if base in ALLOWED_MIME_TYPES:
        return base
    if base in {"", "application/octet-stream"}:
        suffix = PurePosixPath(filename or "").suffix.lstrip(".").lower()
        return MIME_TYPES.get(suffix)
    return None


def _day(value: date) -> str:
    return value.strftime("%m-%d-%Y")


def _clean(segment: str) -> str:
    return _SAFE.sub("_", segment.strip()).strip("._") or "bin"


def _join(owner: str | None, name: str) -> str:
    if not owner:
        return name
    return f"{_clean(owner)}/{name}"
