"""API key authentication and the owner label used to namespace storage keys."""

from __future__ import annotations

import hashlib
import hmac

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..settings import APISettings, get_settings

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(
    api_key: str | None = Security(API_KEY_HEADER),
    settings: APISettings = Depends(get_settings),
) -> str:
    if not api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="API key missing")
    if not any(hmac.compare_digest(api_key, known) for known in settings.api_keys):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return api_key


def get_owner(api_key: str = Depends(get_api_key)) -> str:
    """Opaque, stable label for the caller. Never exposes the key itself."""
    return "user-" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:12]
