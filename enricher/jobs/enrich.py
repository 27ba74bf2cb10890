"""Batch enrichment runner for flagged records.

Picks up records whose content version is the stale sentinel, regenerates
their narrative through the backoff executor and writes the result back with
a version-checked commit. Intended to be executed by an external scheduler
(cron endpoint, APScheduler, CI job) via ``enricher.jobs.trigger`` or this
module's CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

from enricher.core.backoff import BackoffExecutor
from enricher.generation.generator import ContentGenerator
from enricher.refresh.budget import RefreshBudget
from enricher.store.base import RecordStore
from enricher.utils.logger import get_logger, setup_logging
from models.content import as_payload
from models.record import RefreshableRecord, utc_now

log = get_logger(__name__)

DEFAULT_OUTCOME_CAP = 20

SUCCEEDED = "succeeded"
FAILED = "failed"
CONFLICT = "conflict"


@dataclass(slots=True)
class RecordOutcome:
    record_id: str
    name: Optional[str]
    status: str
    attempts: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "name": self.name,
            "status": self.status,
            "attempts": self.attempts,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass(slots=True)
class BatchSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    conflicts: int = 0
    dry_run: bool = False
    outcomes: List[RecordOutcome] = field(default_factory=list)
    omitted_outcomes: int = 0

    @property
    def status(self) -> str:
        if self.attempted == 0:
            return "idle"
        if self.failed == 0:
            return "success"
        if self.succeeded == 0 and self.conflicts == 0:
            return "failed"
        return "partial"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "conflicts": self.conflicts,
            "dry_run": self.dry_run,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "omitted_outcomes": self.omitted_outcomes,
        }


class BatchEnrichmentRunner:
    def __init__(
        self,
        store: RecordStore,
        generator: ContentGenerator,
        *,
        executor: Optional[BackoffExecutor] = None,
        outcome_cap: int = DEFAULT_OUTCOME_CAP,
        dry_run: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if outcome_cap < 0:
            raise ValueError("outcome_cap must be non-negative")
        self.store = store
        self.generator = generator
        self.executor = executor or BackoffExecutor()
        self.outcome_cap = outcome_cap
        self.dry_run = dry_run
        self.clock = clock

    def _record(self, summary: BatchSummary, outcome: RecordOutcome) -> None:
        summary.attempted += 1
        if outcome.status == SUCCEEDED:
            summary.succeeded += 1
        elif outcome.status == FAILED:
            summary.failed += 1
        else:
            summary.conflicts += 1

        if len(summary.outcomes) < self.outcome_cap:
            summary.outcomes.append(outcome)
        else:
            summary.omitted_outcomes += 1

        log.info(
            f"[enrich] {outcome.status.upper()} {outcome.name or outcome.record_id} "
            f"attempts={outcome.attempts} duration_ms={outcome.duration_ms}"
        )

    async def _process(self, record: RefreshableRecord) -> RecordOutcome:
        attempts = 0

        async def attempt() -> Any:
            nonlocal attempts
            attempts += 1
            return await self.generator.generate(record)

        start = time.perf_counter()
        outcome = RecordOutcome(record_id=record.id, name=record.name, status=FAILED)

        if record.problem:
            outcome.error = f"malformed record: {record.problem}"
            log.error(f"[enrich] SKIP {record.label}: {record.problem}")
            return outcome

        try:
            content = await self.executor.execute(attempt, record.id)
            payload = as_payload(content)
        except Exception as exc:  # noqa: BLE001 - exhausted retries stay per-record
            outcome.attempts = attempts
            outcome.duration_ms = int((time.perf_counter() - start) * 1000)
            outcome.error = str(exc) or exc.__class__.__name__
            log.error(f"[enrich] Generation failed for {record.label} after {attempts} attempt(s): {exc}")
            return outcome

        outcome.attempts = attempts

        if self.dry_run:
            for key, value in payload.items():
                preview = f"{value[:150]}..." if isinstance(value, str) else value
                log.info(f"[enrich] preview {record.label} {key}: {preview}")
            outcome.status = SUCCEEDED
        else:
            # store failures are fatal for the batch and propagate from here
            committed = await self.store.commit_generated_content(
                record.id,
                payload,
                expected_prior_version=record.content_version,
                generated_at=self.clock(),
            )
            if committed:
                outcome.status = SUCCEEDED
            else:
                outcome.status = CONFLICT
                log.info(f"[enrich] {record.label} was updated by another run, discarding generated content")

        outcome.duration_ms = int((time.perf_counter() - start) * 1000)
        return outcome

    async def run_batch(self, limit: int) -> BatchSummary:
        if limit <= 0:
            raise ValueError("limit must be positive")

        summary = BatchSummary(started_at=self.clock(), dry_run=self.dry_run)
        records = await self.store.find_flagged(limit)
        budget = RefreshBudget(limit)

        if not records:
            log.info("[enrich] No flagged records to process")
        else:
            log.info(f"[enrich] Found {len(records)} flagged record(s) to enrich")

        for record in records:
            if not budget.allow():
                log.info(f"[enrich] STOP budget exhausted (max={limit})")
                break
            budget.consume()
            outcome = await self._process(record)
            self._record(summary, outcome)

        summary.finished_at = self.clock()
        log.info(
            f"[enrich] Summary status={summary.status} attempted={summary.attempted} "
            f"succeeded={summary.succeeded} failed={summary.failed} conflicts={summary.conflicts}"
        )
        return summary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Regenerate narrative content for flagged records")
    parser.add_argument("--limit", type=int, default=None, help="Maximum records to process this run.")
    parser.add_argument("--dry-run", action="store_true", help="Generate content without saving it.")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print the summary as JSON.")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> int:
    from enricher.core.settings import get_settings
    from enricher.jobs.trigger import open_resources, run_enrichment

    settings = get_settings()
    async with open_resources(settings) as (store, generator):
        summary = await run_enrichment(
            store, generator, settings=settings, limit=args.limit, dry_run=args.dry_run
        )
        usage = getattr(getattr(generator, "synthesis", None), "usage", None)
        if usage is not None:
            log.info(f"[enrich] Est. cost: ${usage.estimate_cost():.4f}")

    if args.as_json:
        print(json.dumps(summary.as_dict(), indent=2))
    return 0 if summary.status != "failed" else 1


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    setup_logging()
    raise SystemExit(asyncio.run(_main(parse_args(argv))))


if __name__ == "__main__":
    main()
