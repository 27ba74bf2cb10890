"""Process scheduled refreshes.

Flags records whose last edit is older than the cooldown so the next
enrichment batch regenerates them. Edits during the cooldown keep pushing
the schedule back, so a burst of edits produces a single refresh.

Usage:
    python -m enricher.jobs.sweep
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import List, Optional

from dotenv import load_dotenv

from enricher.core.settings import get_settings
from enricher.jobs.trigger import run_sweep
from enricher.utils.logger import get_logger, setup_logging

log = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flag records whose refresh cooldown has elapsed")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print the sweep report as JSON.")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> None:
    from enricher.core.db import close_db, get_records_col
    from enricher.store.mongo import MongoRecordStore

    settings = get_settings()
    settings.validate()
    try:
        report = await run_sweep(MongoRecordStore(get_records_col()), settings=settings)
    finally:
        await close_db()

    if report.flagged:
        log.info("These records will be enriched by the next run of: python -m enricher.jobs.enrich")
    if args.as_json:
        print(json.dumps(report.as_dict(), indent=2))


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    setup_logging()
    asyncio.run(_main(parse_args(argv)))


if __name__ == "__main__":
    main()
