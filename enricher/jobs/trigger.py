"""Entry points invoked by the periodic trigger.

The trigger is the only place that reads the wall clock and configuration;
everything below it receives ``now``, ``cooldown`` and ``limit`` explicitly.
Each call is bounded by ``settings.timeout_seconds``; a timed-out record is
left uncommitted and gets picked up again by the next run.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from enricher.core.backoff import BackoffExecutor
from enricher.core.errors import ConfigError, is_retryable
from enricher.core.settings import RefreshSettings
from enricher.core.state import write_last_run
from enricher.generation.generator import ContentGenerator, NarrativeGenerator
from enricher.generation.search import SearchClient
from enricher.generation.synthesis import SynthesisClient
from enricher.jobs.enrich import BatchEnrichmentRunner, BatchSummary
from enricher.refresh.sweep import CooldownScheduler, SweepReport
from enricher.store.base import RecordStore
from enricher.utils.logger import bind_run, get_logger
from models.record import utc_now

log = get_logger(__name__)


@dataclass(slots=True)
class CycleResult:
    sweep: SweepReport
    batch: BatchSummary

    def as_dict(self) -> Dict[str, Any]:
        return {"sweep": self.sweep.as_dict(), "batch": self.batch.as_dict()}


async def run_sweep(
    store: RecordStore,
    *,
    settings: RefreshSettings,
    now: Optional[datetime] = None,
) -> SweepReport:
    now = now or utc_now()
    log.info(f"[trigger] Processing scheduled refreshes at {now.isoformat()}")
    return await asyncio.wait_for(
        CooldownScheduler(store).sweep(settings.cooldown, now),
        timeout=settings.timeout_seconds,
    )


def build_runner(
    store: RecordStore,
    generator: ContentGenerator,
    *,
    settings: RefreshSettings,
    dry_run: bool = False,
) -> BatchEnrichmentRunner:
    return BatchEnrichmentRunner(
        store,
        generator,
        executor=BackoffExecutor(settings.retry, retry_on=is_retryable),
        outcome_cap=settings.outcome_cap,
        dry_run=dry_run,
    )


async def run_enrichment(
    store: RecordStore,
    generator: ContentGenerator,
    *,
    settings: RefreshSettings,
    limit: Optional[int] = None,
    dry_run: bool = False,
) -> BatchSummary:
    runner = build_runner(store, generator, settings=settings, dry_run=dry_run)
    log.info(f"[trigger] Starting enrichment batch at {utc_now().isoformat()}")
    return await asyncio.wait_for(
        runner.run_batch(limit if limit is not None else settings.batch_limit),
        timeout=settings.timeout_seconds,
    )


async def run_refresh_cycle(
    store: RecordStore,
    generator: ContentGenerator,
    *,
    settings: RefreshSettings,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CycleResult:
    """Sweep, then enrich whatever is flagged, under one wall-clock budget."""
    now = now or utc_now()
    state_dir = settings.state_dir
    run_state: Dict[str, Any] = {
        "run_id": f"refresh-{now.strftime('%Y-%m-%dT%H-%M-%S')}",
        "started_at": now.isoformat(),
        "status": "running",
    }
    run_log = bind_run(log, run_state["run_id"])
    run_log.info(f"[trigger] Refresh cycle started at {now.isoformat()}")
    write_last_run(run_state, state_dir)

    async def cycle() -> CycleResult:
        report = await CooldownScheduler(store).sweep(settings.cooldown, now)
        runner = build_runner(store, generator, settings=settings)
        summary = await runner.run_batch(limit if limit is not None else settings.batch_limit)
        return CycleResult(sweep=report, batch=summary)

    try:
        result = await asyncio.wait_for(cycle(), timeout=settings.timeout_seconds)
    except Exception as exc:
        run_state.update({"status": "error", "error": str(exc) or exc.__class__.__name__})
        run_log.error(f"[trigger] Refresh cycle failed: {run_state['error']}")
        write_last_run(run_state, state_dir)
        raise

    run_state.update({"status": result.batch.status, **result.as_dict()})
    run_log.info(f"[trigger] Refresh cycle finished with status={result.batch.status}")
    write_last_run(run_state, state_dir)
    return result


def build_generator(settings: RefreshSettings) -> NarrativeGenerator:
    if not settings.tavily_api_key or not settings.openai_api_key:
        raise ConfigError("TAVILY_API_KEY and OPENAI_API_KEY are required for enrichment", section="generation")
    return NarrativeGenerator(
        SearchClient(settings.tavily_api_key),
        SynthesisClient(settings.openai_api_key),
    )


@asynccontextmanager
async def open_resources(settings: RefreshSettings) -> AsyncIterator[Tuple[RecordStore, NarrativeGenerator]]:
    """Mongo-backed store plus live generator, closed on exit."""
    from enricher.core.db import close_db, get_records_col
    from enricher.store.mongo import MongoRecordStore

    settings.validate()
    generator = build_generator(settings)
    store = MongoRecordStore(get_records_col())
    try:
        yield store, generator
    finally:
        await generator.close()
        await close_db()


__all__ = [
    "CycleResult",
    "build_generator",
    "build_runner",
    "open_resources",
    "run_enrichment",
    "run_refresh_cycle",
    "run_sweep",
]
