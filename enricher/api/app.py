import os

from fastapi import FastAPI

from enricher import __version__
from enricher.api.routes import router
from enricher.core.errors import EnricherError
from enricher.core.settings import get_settings
from enricher.utils.logger import get_logger

log = get_logger(__name__)

app = FastAPI(
    title="Narrative Refresher",
    description="Cron endpoints for the cooldown sweep and narrative enrichment batches",
    version=__version__,
)
app.state.store = None
app.state.generator = None
app.state.scheduler = None
app.include_router(router)


@app.on_event("startup")
async def startup_event():
    settings = get_settings()

    if settings.mongo_uri:
        from enricher.core.db import get_records_col
        from enricher.store.mongo import MongoRecordStore

        store = MongoRecordStore(get_records_col())
        try:
            await store.ensure_indexes()
        except EnricherError as e:
            log.error(f"Index initialization failed: {e}")
        app.state.store = store

    if settings.tavily_api_key and settings.openai_api_key:
        from enricher.jobs.trigger import build_generator

        app.state.generator = build_generator(settings)

    if os.getenv("ENABLE_SCHEDULER", "false").lower() == "true":
        if app.state.store is None or app.state.generator is None:
            log.error("Scheduler not started: store or generator is not configured")
        else:
            from enricher.scheduler.scheduler import start_scheduler

            app.state.scheduler = start_scheduler(app.state.store, app.state.generator, settings)


@app.on_event("shutdown")
async def shutdown_event():
    if app.state.scheduler is not None:
        app.state.scheduler.shutdown(wait=False)
    if app.state.generator is not None:
        await app.state.generator.close()
    if app.state.store is not None:
        from enricher.core.db import close_db

        await close_db()
