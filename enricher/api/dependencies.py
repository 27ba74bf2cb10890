"""FastAPI dependencies for the cron endpoints."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request

from enricher.core.settings import RefreshSettings, get_settings
from enricher.generation.generator import ContentGenerator
from enricher.store.base import RecordStore
from enricher.utils.logger import get_logger

log = get_logger(__name__)


def require_cron_secret(request: Request, settings: RefreshSettings = Depends(get_settings)) -> None:
    expected = settings.cron_secret
    auth_header = request.headers.get("authorization") or ""
    if not expected or not secrets.compare_digest(auth_header.encode(), f"Bearer {expected}".encode()):
        log.error("[CRON] Unauthorized request attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_store(request: Request) -> Optional[RecordStore]:
    return getattr(request.app.state, "store", None)


def get_generator(request: Request) -> Optional[ContentGenerator]:
    return getattr(request.app.state, "generator", None)


__all__ = ["get_generator", "get_store", "require_cron_secret"]
