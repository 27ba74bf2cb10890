import asyncio
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from enricher.core.config import Config
from enricher.core.errors import EnricherError
from enricher.core.settings import RefreshSettings, get_settings
from enricher.generation.generator import ContentGenerator
from enricher.jobs.trigger import open_resources, run_enrichment, run_sweep
from enricher.store.base import RecordStore
from enricher.utils.logger import get_logger, setup_logging

log = get_logger(__name__)

SWEEP_JOB_ID = "refresh_sweep"
ENRICH_JOB_ID = "narrative_enrich"


async def sweep_job(store: RecordStore, settings: RefreshSettings) -> None:
    """Flag cooled-down records. Runs every few minutes."""
    try:
        report = await run_sweep(store, settings=settings)
        log.info(f"Sweep job flagged {len(report.flagged)} record(s)")
    except (EnricherError, asyncio.TimeoutError) as e:
        log.error(f"Sweep job failed: {e}")


async def enrich_job(store: RecordStore, generator: ContentGenerator, settings: RefreshSettings) -> None:
    """Regenerate content for flagged records. Runs once a day."""
    try:
        summary = await run_enrichment(store, generator, settings=settings)
        log.info(
            f"Enrichment job completed: {summary.succeeded} updated, "
            f"{summary.failed} failed, {summary.conflicts} discarded"
        )
    except (EnricherError, asyncio.TimeoutError) as e:
        log.error(f"Enrichment job failed: {e}")
    finally:
        # the generator outlives each run, so usage is reported per run
        usage = getattr(getattr(generator, "synthesis", None), "usage", None)
        if usage is not None:
            log.info(f"Enrichment job est. cost: ${usage.estimate_cost():.4f}")
            usage.reset()


def build_scheduler(
    store: RecordStore,
    generator: ContentGenerator,
    settings: RefreshSettings,
) -> AsyncIOScheduler:
    scheduler_cfg = Config.get("scheduler", default={}) or {}
    timezone = scheduler_cfg.get("timezone", "UTC")
    misfire_grace = int(scheduler_cfg.get("misfire_grace_seconds", 300))

    scheduler = AsyncIOScheduler(timezone=timezone)
    scheduler.add_job(
        sweep_job,
        IntervalTrigger(minutes=int(scheduler_cfg.get("sweep_interval_minutes", 15))),
        args=[store, settings],
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=misfire_grace,
        replace_existing=True,
    )
    scheduler.add_job(
        enrich_job,
        CronTrigger(
            hour=int(scheduler_cfg.get("enrich_hour", 10)),
            minute=int(scheduler_cfg.get("enrich_minute", 0)),
            timezone=timezone,
        ),
        args=[store, generator, settings],
        id=ENRICH_JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=misfire_grace,
        replace_existing=True,
    )
    return scheduler


def start_scheduler(
    store: RecordStore,
    generator: ContentGenerator,
    settings: Optional[RefreshSettings] = None,
) -> AsyncIOScheduler:
    """Start the background scheduler on the running event loop"""
    scheduler = build_scheduler(store, generator, settings or get_settings())
    scheduler.start()
    log.info("Refresh scheduler started (sweep interval + daily enrichment)")
    return scheduler


async def main():
    setup_logging()
    log.info("=== Narrative Refresher Scheduler Starting ===")

    settings = get_settings()
    async with open_resources(settings) as (store, generator):
        scheduler = start_scheduler(store, generator, settings)

        if "--now" in sys.argv:
            log.info("Running jobs immediately (--now flag detected)")
            await sweep_job(store, settings)
            await enrich_job(store, generator, settings)

        try:
            while True:
                await asyncio.sleep(100)
        except (KeyboardInterrupt, SystemExit):
            log.info("Scheduler shutting down...")
        finally:
            scheduler.shutdown(wait=False)


if __name__ == "__main__":
    load_dotenv()
    asyncio.run(main())
