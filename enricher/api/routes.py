"""Cron endpoints called by the external periodic scheduler."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from enricher.api.dependencies import get_generator, get_store, require_cron_secret
from enricher.core.db import ping_db
from enricher.core.errors import ConfigError, EnricherError
from enricher.core.settings import RefreshSettings, get_settings
from enricher.generation.generator import ContentGenerator
from enricher.jobs.trigger import run_enrichment, run_refresh_cycle, run_sweep
from enricher.store.base import RecordStore
from enricher.store.mongo import MongoRecordStore
from enricher.utils.logger import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["cron"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "timestamp": _timestamp()},
    )


def _missing_config(
    settings: RefreshSettings,
    store: Optional[RecordStore],
    generator: Optional[ContentGenerator],
    *,
    needs_generator: bool,
) -> Optional[JSONResponse]:
    missing = []
    if store is None:
        missing.append("MONGO_URI")
    if needs_generator and generator is None:
        keys = (("TAVILY_API_KEY", settings.tavily_api_key), ("OPENAI_API_KEY", settings.openai_api_key))
        missing.extend([name for name, value in keys if not value] or ["content generator"])
    if not missing:
        return None
    log.error(f"[CRON] Missing required configuration: {missing}")
    return _error(500, "Configuration error", f"Missing environment variables: {', '.join(missing)}")


async def _guarded(phase: str, call) -> Any:
    try:
        return await call
    except asyncio.TimeoutError:
        log.error(f"[CRON] {phase} exceeded its time budget")
        return _error(504, f"{phase} timed out", "The run exceeded its time budget; it is safe to retry")
    except ConfigError as exc:
        log.error(f"[CRON] {phase} configuration error: {exc}")
        return _error(500, "Configuration error", exc.message)
    except EnricherError as exc:
        log.error(f"[CRON] {phase} failed: {exc}")
        return _error(500, f"{phase} failed", exc.message)


@router.get("/health")
async def health(store: Optional[RecordStore] = Depends(get_store)) -> Dict[str, Any]:
    database = None
    if isinstance(store, MongoRecordStore):
        database = "connected" if await ping_db() else "unreachable"
    return {
        "status": "ok" if database != "unreachable" else "degraded",
        "store_configured": store is not None,
        "database": database,
        "timestamp": _timestamp(),
    }


@router.get("/cron/process-refreshes", dependencies=[Depends(require_cron_secret)])
async def process_refreshes(
    settings: RefreshSettings = Depends(get_settings),
    store: Optional[RecordStore] = Depends(get_store),
    generator: Optional[ContentGenerator] = Depends(get_generator),
):
    problem = _missing_config(settings, store, generator, needs_generator=False)
    if problem is not None:
        return problem

    result = await _guarded("Narrative refresh processing", run_sweep(store, settings=settings))
    if isinstance(result, JSONResponse):
        return result

    return {
        "success": True,
        "message": f"Flagged {len(result.flagged)} record(s) for narrative refresh",
        "timestamp": _timestamp(),
        "flagged": [item.to_dict() for item in result.flagged[: settings.outcome_cap]],
        "skipped": len(result.skipped),
        "already_handled": len(result.already_handled),
    }


@router.get("/cron/enrich", dependencies=[Depends(require_cron_secret)])
async def enrich(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    settings: RefreshSettings = Depends(get_settings),
    store: Optional[RecordStore] = Depends(get_store),
    generator: Optional[ContentGenerator] = Depends(get_generator),
):
    problem = _missing_config(settings, store, generator, needs_generator=True)
    if problem is not None:
        return problem

    summary = await _guarded(
        "Enrichment", run_enrichment(store, generator, settings=settings, limit=limit)
    )
    if isinstance(summary, JSONResponse):
        return summary

    payload = summary.as_dict()
    return {
        "success": True,
        "message": (
            f"Enrichment completed: {summary.succeeded} updated, "
            f"{summary.conflicts} skipped, {summary.failed} failed"
        ),
        "timestamp": _timestamp(),
        "stats": {
            "processed": summary.attempted,
            "updated": summary.succeeded,
            "skipped": summary.conflicts,
            "failed": summary.failed,
        },
        "records": payload["outcomes"],
    }


@router.get("/cron/refresh-cycle", dependencies=[Depends(require_cron_secret)])
async def refresh_cycle(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    settings: RefreshSettings = Depends(get_settings),
    store: Optional[RecordStore] = Depends(get_store),
    generator: Optional[ContentGenerator] = Depends(get_generator),
):
    problem = _missing_config(settings, store, generator, needs_generator=True)
    if problem is not None:
        return problem

    result = await _guarded(
        "Refresh cycle", run_refresh_cycle(store, generator, settings=settings, limit=limit)
    )
    if isinstance(result, JSONResponse):
        return result

    return {"success": True, "timestamp": _timestamp(), **result.as_dict()}
