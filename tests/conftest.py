"""Pytest configuration helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()


@pytest.fixture()
def make_audio():
    from tests.fakes import synth_audio

    return synth_audio


@pytest.fixture()
def api_settings(tmp_path):
    from src.api.settings import APISettings

    return APISettings(
        api_keys=["test-key"],
        data_dir=str(tmp_path),
        storage_backend="local",
        signing_secret="test-secret",
        whisper_mock_transcriber=True,
        openai_api_key=None,
        transcribe_retry_wait_sec=0.0,
        chunk_format="wav",
    )
