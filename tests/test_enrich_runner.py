import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from enricher.core.errors import PersistenceError
from enricher.jobs.enrich import BatchEnrichmentRunner, parse_args
from enricher.store.memory import InMemoryRecordStore
from models.record import RefreshableRecord

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_flagged(record_id, minutes=0, **overrides):
    flagged_at = T0 + timedelta(minutes=minutes)
    data = {
        "id": record_id,
        "name": f"Product {record_id}",
        "content_version": 0,
        "flagged_at": flagged_at,
        "generated_content": {"origin_story": "previous"},
    }
    data.update(overrides)
    return RefreshableRecord(**data)


def five_record_store():
    return InMemoryRecordStore([make_flagged(f"r{i}", minutes=i) for i in range(1, 6)])


def test_batch_with_permanent_failures(executor, scripted_generator, now):
    store = five_record_store()
    generator = scripted_generator(permanent={"r2", "r4"})
    runner = BatchEnrichmentRunner(store, generator, executor=executor, clock=lambda: now)

    summary = asyncio.run(runner.run_batch(10))

    assert (summary.attempted, summary.succeeded, summary.failed) == (5, 3, 2)
    assert summary.status == "partial"
    for record_id in ("r1", "r3", "r5"):
        record = store.get(record_id)
        assert record.content_version == 1
        assert record.flagged_at is None
        assert record.generated_at == now
        assert record.generated_content["origin_story"] == f"Story of Product {record_id}"
    for record_id in ("r2", "r4"):
        record = store.get(record_id)
        assert record.content_version == 0
        assert record.generated_content == {"origin_story": "previous"}

    failed = [outcome for outcome in summary.outcomes if outcome.status == "failed"]
    assert [outcome.record_id for outcome in failed] == ["r2", "r4"]
    assert all(outcome.attempts == 3 for outcome in failed)
    assert "provider down" in failed[0].error


def test_transient_failures_recover_within_attempts(executor, scripted_generator, sleeps):
    store = InMemoryRecordStore([make_flagged("r1")])
    generator = scripted_generator(failures={"r1": 2})
    runner = BatchEnrichmentRunner(store, generator, executor=executor)

    summary = asyncio.run(runner.run_batch(5))

    assert summary.status == "success"
    assert summary.outcomes[0].attempts == 3
    assert len(sleeps.delays) == 2
    assert store.get("r1").content_version == 1


def test_failed_records_are_retried_next_run(executor, scripted_generator):
    store = InMemoryRecordStore([make_flagged("r1")])

    first = asyncio.run(
        BatchEnrichmentRunner(store, scripted_generator(permanent={"r1"}), executor=executor).run_batch(5)
    )
    second = asyncio.run(BatchEnrichmentRunner(store, scripted_generator(), executor=executor).run_batch(5))

    assert first.status == "failed"
    assert second.status == "success"
    assert store.get("r1").content_version == 1


def test_processes_oldest_flag_first_up_to_limit(executor, scripted_generator):
    store = InMemoryRecordStore(
        [
            make_flagged("late", minutes=30),
            make_flagged("early", minutes=1),
            make_flagged("never", flagged_at=None),
            make_flagged("fresh", content_version=4),
        ]
    )
    generator = scripted_generator()
    runner = BatchEnrichmentRunner(store, generator, executor=executor)

    summary = asyncio.run(runner.run_batch(2))

    assert generator.calls == ["never", "early"]
    assert summary.attempted == 2
    assert store.get("late").content_version == 0
    assert store.get("fresh").content_version == 4


class RacingStore(InMemoryRecordStore):
    """Commits a competing version right before the runner's commit lands."""

    async def commit_generated_content(self, record_id, content, expected_prior_version, *, generated_at=None):
        await super().commit_generated_content(record_id, {"origin_story": "winner"}, expected_prior_version)
        return await super().commit_generated_content(
            record_id, content, expected_prior_version, generated_at=generated_at
        )


def test_version_conflict_discards_generated_content(executor, scripted_generator):
    store = RacingStore([make_flagged("r1")])
    runner = BatchEnrichmentRunner(store, scripted_generator(), executor=executor)

    summary = asyncio.run(runner.run_batch(5))

    assert summary.conflicts == 1
    assert summary.succeeded == 0
    assert summary.outcomes[0].status == "conflict"
    assert store.get("r1").generated_content == {"origin_story": "winner"}
    assert store.get("r1").content_version == 1


def test_outcome_list_is_capped(executor, scripted_generator):
    store = five_record_store()
    runner = BatchEnrichmentRunner(store, scripted_generator(), executor=executor, outcome_cap=2)

    summary = asyncio.run(runner.run_batch(10))

    assert summary.succeeded == 5
    assert len(summary.outcomes) == 2
    assert summary.omitted_outcomes == 3
    assert summary.as_dict()["omitted_outcomes"] == 3


def test_dry_run_leaves_store_untouched(executor, scripted_generator):
    store = five_record_store()
    runner = BatchEnrichmentRunner(store, scripted_generator(), executor=executor, dry_run=True)

    summary = asyncio.run(runner.run_batch(10))

    assert summary.dry_run
    assert summary.succeeded == 5
    assert all(record.content_version == 0 for record in store.all())


def test_empty_batch_is_idle(executor, scripted_generator):
    runner = BatchEnrichmentRunner(InMemoryRecordStore(), scripted_generator(), executor=executor)

    summary = asyncio.run(runner.run_batch(5))

    assert summary.status == "idle"
    assert summary.attempted == 0


class EmptyHandedGenerator:
    """Returns nothing for the ids in ``empty``, real content otherwise."""

    def __init__(self, empty):
        self.empty = set(empty)
        self.calls = []

    async def generate(self, record):
        self.calls.append(record.id)
        if record.id in self.empty:
            return None
        return {"origin_story": f"Story of {record.label}"}


def test_unusable_generated_content_fails_only_that_record(executor):
    store = InMemoryRecordStore([make_flagged("a", minutes=1), make_flagged("b", minutes=2)])
    generator = EmptyHandedGenerator(empty={"a"})
    runner = BatchEnrichmentRunner(store, generator, executor=executor)

    summary = asyncio.run(runner.run_batch(5))

    assert generator.calls == ["a", "b"]
    assert (summary.attempted, summary.succeeded, summary.failed) == (2, 1, 1)
    failed = summary.outcomes[0]
    assert (failed.record_id, failed.status, failed.attempts) == ("a", "failed", 1)
    assert "NoneType" in failed.error
    assert store.get("a").content_version == 0
    assert store.get("a").generated_content == {"origin_story": "previous"}
    assert store.get("b").content_version == 1


class BrokenStore(InMemoryRecordStore):
    async def commit_generated_content(self, record_id, content, expected_prior_version, *, generated_at=None):
        raise PersistenceError("connection reset", operation="commit_generated_content", record_id=record_id)


def test_store_failure_aborts_batch(executor, scripted_generator):
    runner = BatchEnrichmentRunner(BrokenStore([make_flagged("r1")]), scripted_generator(), executor=executor)

    with pytest.raises(PersistenceError):
        asyncio.run(runner.run_batch(5))


@pytest.mark.parametrize("limit", [0, -3])
def test_non_positive_limit_is_rejected(executor, scripted_generator, limit):
    runner = BatchEnrichmentRunner(InMemoryRecordStore(), scripted_generator(), executor=executor)

    with pytest.raises(ValueError):
        asyncio.run(runner.run_batch(limit))


def test_cli_arguments():
    args = parse_args(["--limit", "7", "--dry-run", "--json"])
    assert args.limit == 7
    assert args.dry_run
    assert args.as_json

    defaults = parse_args([])
    assert defaults.limit is None
    assert not defaults.dry_run
