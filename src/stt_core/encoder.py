"""Decode a clip once and re-encode planned intervals as standalone audio files."""

from __future__ import annotations

import io
import logging
from typing import Iterator

import numpy as np
import soundfile as sf

from .errors import DecodeError, InvalidInput
from .types import ChunkInterval, ChunkPayload, ChunkPlan, DecodedAudio

LOGGER = logging.getLogger("journalease.encoder")

# container -> (libsndfile format, subtype, mime type)
CHUNK_FORMATS = {
    "flac": ("FLAC", "PCM_16", "audio/flac"),
    "wav": ("WAV", "PCM_16", "audio/wav"),
    "ogg": ("OGG", "VORBIS", "audio/ogg"),
}

# Upper-bound bytes per second per channel for lossy chunks (~192 kbps).
_OGG_BYTES_PER_SEC = 24_000
_FLAC_RATIO = 0.75
_WAV_HEADER_BYTES = 44


def decode(data: bytes) -> DecodedAudio:
    """Decode the whole clip into float32 frames. Raises ``DecodeError``."""

    if not data:
        raise DecodeError("empty audio payload")
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except (sf.SoundFileError, RuntimeError, ValueError) as exc:
        raise DecodeError(f"unable to decode audio: {exc}") from exc
    if samples.size == 0 or sample_rate <= 0:
        raise DecodeError("decoded audio contains no samples")
    return DecodedAudio(samples=samples, sample_rate=int(sample_rate))


def probe_duration(data: bytes) -> float:
    """Read the clip duration from its header without decoding the samples."""

    if not data:
        raise DecodeError("empty audio payload")
    try:
        info = sf.info(io.BytesIO(data))
    except (sf.SoundFileError, RuntimeError, ValueError) as exc:
        raise DecodeError(f"unable to read audio header: {exc}") from exc
    if not info.samplerate or info.frames <= 0:
        raise DecodeError("audio header reports no frames")
    return info.frames / float(info.samplerate)


def estimate_encoded_bytes(duration: float, sample_rate: int, channels: int, fmt: str = "flac") -> int:
    container, _, _ = _format(fmt)
    if container == "OGG":
        return int(duration * channels * _OGG_BYTES_PER_SEC)
    pcm = int(round(duration * sample_rate)) * channels * 2 + _WAV_HEADER_BYTES
    if container == "FLAC":
        return int(pcm * _FLAC_RATIO)
    return pcm


def sample_range(interval: ChunkInterval, sample_rate: int, frames: int) -> tuple[int, int]:
    start = min(max(0, int(round(interval.start * sample_rate))), frames)
    end = min(max(start, int(round(interval.end * sample_rate))), frames)
    return start, end


def encode(
    audio: DecodedAudio,
    interval: ChunkInterval,
    *,
    index: int = 1,
    total: int = 1,
    fmt: str = "flac",
) -> ChunkPayload:
    """Copy ``interval`` out of ``audio`` and write it as a self-contained container."""

    container, subtype, mime = _format(fmt)
    start, end = sample_range(interval, audio.sample_rate, audio.frames)
    if end <= start:
        raise InvalidInput(f"interval {interval.start:.3f}-{interval.end:.3f}s selects no samples")
    # Copy so the chunk does not pin the full decoded buffer.
    frames = np.array(audio.samples[start:end], copy=True)
    buffer = io.BytesIO()
    sf.write(buffer, frames, audio.sample_rate, format=container, subtype=subtype)
    LOGGER.debug(
        "Encoded chunk %s/%s (%s frames, %s bytes, %s)",
        index,
        total,
        end - start,
        buffer.tell(),
        fmt,
    )
    return ChunkPayload(
        index=index,
        total=total,
        data=buffer.getvalue(),
        interval=interval,
        content_type=mime,
        extension=fmt,
    )


def iter_payloads(audio: DecodedAudio, chunk_plan: ChunkPlan, fmt: str = "flac") -> Iterator[ChunkPayload]:
    """Yield payloads lazily so only one encoded chunk is held at a time."""

    for idx, interval in enumerate(chunk_plan.intervals, start=1):
        yield encode(audio, interval, index=idx, total=chunk_plan.count, fmt=fmt)


def _format(fmt: str) -> tuple[str, str, str]:
    try:
        return CHUNK_FORMATS[fmt.lower()]
    except KeyError as exc:
        raise InvalidInput(f"unsupported chunk format {fmt!r}") from exc
