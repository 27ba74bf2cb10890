import asyncio
from datetime import timedelta

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from enricher.core.errors import MalformedRecordError, PersistenceError
from enricher.jobs.enrich import BatchEnrichmentRunner
from enricher.refresh.sweep import CooldownScheduler
from enricher.store.memory import InMemoryRecordStore
from enricher.store.mongo import STALE_VERSION_FILTER, MongoRecordStore
from models.content import NarrativeContent
from models.record import RefreshableRecord

HOUR = timedelta(hours=1)


def make_record(record_id="rec-1", **overrides):
    data = {"id": record_id, "name": "Acme Widgets", "content_version": 0}
    data.update(overrides)
    return RefreshableRecord(**data)


# --- in-memory store ---


def test_commit_with_stale_expected_version_is_rejected(now):
    store = InMemoryRecordStore([make_record(content_version=3, generated_content={"origin_story": "v3"})])

    committed = asyncio.run(store.commit_generated_content("rec-1", {"origin_story": "late"}, 0))

    assert committed is False
    record = store.get("rec-1")
    assert record.content_version == 3
    assert record.generated_content == {"origin_story": "v3"}


def test_commit_accepts_pydantic_content(now):
    store = InMemoryRecordStore([make_record(flagged_at=now)])
    content = NarrativeContent(origin_story="Founded in a garage.")

    committed = asyncio.run(store.commit_generated_content("rec-1", content, 0, generated_at=now))

    assert committed
    record = store.get("rec-1")
    assert record.content_version == 1
    assert record.generated_content["origin_story"] == "Founded in a garage."
    assert record.generated_at == now
    assert record.flagged_at is None


def test_second_commit_with_same_version_loses(now):
    store = InMemoryRecordStore([make_record()])

    first = asyncio.run(store.commit_generated_content("rec-1", {"origin_story": "a"}, 0))
    second = asyncio.run(store.commit_generated_content("rec-1", {"origin_story": "b"}, 0))

    assert (first, second) == (True, False)
    assert store.get("rec-1").generated_content == {"origin_story": "a"}


def test_missing_record_operations_return_false(now):
    store = InMemoryRecordStore()
    assert asyncio.run(store.flag_for_refresh("ghost")) is False
    assert asyncio.run(store.commit_generated_content("ghost", {}, 0)) is False
    assert asyncio.run(store.record_edit("ghost", now)) is False


def test_flag_respects_cutoff(now):
    store = InMemoryRecordStore([make_record(content_version=2, scheduled_refresh_at=now)])

    assert asyncio.run(store.flag_for_refresh("rec-1", cutoff=now - HOUR)) is False
    assert store.get("rec-1").content_version == 2

    assert asyncio.run(store.flag_for_refresh("rec-1", cutoff=now, flagged_at=now)) is True
    record = store.get("rec-1")
    assert record.is_stale
    assert record.flagged_at == now
    assert not record.refresh_pending


def test_store_hands_out_copies(now):
    store = InMemoryRecordStore([make_record(scheduled_refresh_at=now)])
    snapshot = asyncio.run(store.find_records_with_expired_cooldown(now + HOUR, HOUR))[0]

    snapshot.content_version = 99

    assert store.get("rec-1").content_version == 0


def test_find_flagged_limit(now):
    store = InMemoryRecordStore([make_record(f"r{i}", flagged_at=now + timedelta(minutes=i)) for i in range(4)])

    assert [record.id for record in asyncio.run(store.find_flagged(2))] == ["r0", "r1"]
    assert asyncio.run(store.find_flagged(0)) == []


# --- record model ---


def test_record_from_mongo_document():
    record = RefreshableRecord.from_dict(
        {
            "_id": "abc",
            "name": "Acme",
            "scheduled_refresh_at": "2026-03-01T12:00:00Z",
            "content_version": None,
            "metadata": {"season": 4},
        }
    )

    assert record.id == "abc"
    assert record.scheduled_refresh_at.isoformat() == "2026-03-01T12:00:00+00:00"
    assert record.is_stale
    assert record.metadata == {"season": 4}


def test_record_from_dict_strict_requires_identifier():
    with pytest.raises(MalformedRecordError) as exc_info:
        RefreshableRecord.from_dict({"name": "No id"}, strict=True)
    assert exc_info.value.field == "id"


def test_record_from_dict_drops_fields_of_the_wrong_shape():
    document = {"_id": "abc", "metadata": "oops", "generated_content": ["not", "a", "mapping"]}

    record = RefreshableRecord.from_dict(document)

    assert record.metadata == {}
    assert record.generated_content is None

    with pytest.raises(MalformedRecordError) as exc_info:
        RefreshableRecord.from_dict(document, strict=True)
    assert exc_info.value.field == "generated_content"


@pytest.mark.parametrize(
    "document, field",
    [
        ({"_id": "abc", "metadata": "oops"}, "metadata"),
        ({"_id": "abc", "content_version": "v2"}, "content_version"),
        ({"_id": "abc", "scheduled_refresh_at": "yesterday"}, "scheduled_refresh_at"),
    ],
)
def test_record_from_dict_strict_names_the_bad_field(document, field):
    with pytest.raises(MalformedRecordError) as exc_info:
        RefreshableRecord.from_dict(document, strict=True)
    assert exc_info.value.field == field


# --- mongo store against a fake motor collection ---


class FakeResult:
    def __init__(self, matched=0, modified=0):
        self.matched_count = matched
        self.modified_count = modified


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs
        self.sort_spec = None
        self.limit_value = None

    def sort(self, spec):
        self.sort_spec = spec
        return self

    def limit(self, value):
        self.limit_value = value
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self.docs:
            yield doc


class FakeCollection:
    def __init__(self, docs=None, result=None, error=None):
        self.docs = docs or []
        self.result = result or FakeResult(matched=1, modified=1)
        self.error = error
        self.calls = []
        self.cursor = None

    def find(self, query):
        self.calls.append(("find", query))
        if self.error:
            raise self.error
        self.cursor = FakeCursor(self.docs)
        return self.cursor

    async def update_one(self, query, update):
        self.calls.append(("update_one", query, update))
        if self.error:
            raise self.error
        return self.result

    async def create_index(self, keys):
        self.calls.append(("create_index", keys))


def test_mongo_expired_cooldown_query(now):
    col = FakeCollection(docs=[{"_id": "a", "scheduled_refresh_at": now - 2 * HOUR, "content_version": 3}])

    records = asyncio.run(MongoRecordStore(col).find_records_with_expired_cooldown(now, HOUR))

    assert col.calls == [("find", {"scheduled_refresh_at": {"$ne": None, "$lte": now - HOUR}})]
    assert col.cursor.sort_spec == [("scheduled_refresh_at", 1), ("_id", 1)]
    assert [record.id for record in records] == ["a"]
    assert records[0].content_version == 3


def test_mongo_flag_is_conditional_on_schedule(now):
    col = FakeCollection(result=FakeResult(matched=0, modified=0))

    flagged = asyncio.run(MongoRecordStore(col).flag_for_refresh("a", cutoff=now - HOUR, flagged_at=now))

    assert flagged is False
    _, query, update = col.calls[0]
    assert query == {"_id": "a", "scheduled_refresh_at": {"$ne": None, "$lte": now - HOUR}}
    assert update == {"$set": {"content_version": 0, "scheduled_refresh_at": None, "flagged_at": now}}


def test_mongo_find_flagged_orders_and_limits():
    col = FakeCollection(docs=[{"_id": "a", "content_version": 0}])

    records = asyncio.run(MongoRecordStore(col).find_flagged(5))

    assert col.calls == [("find", {"content_version": STALE_VERSION_FILTER})]
    assert col.cursor.sort_spec == [("flagged_at", 1), ("_id", 1)]
    assert col.cursor.limit_value == 5
    assert records[0].is_stale


def test_mongo_commit_checks_expected_version(now):
    col = FakeCollection()
    store = MongoRecordStore(col)

    assert asyncio.run(store.commit_generated_content("a", {"origin_story": "x"}, 0, generated_at=now))
    assert asyncio.run(store.commit_generated_content("a", {"origin_story": "y"}, 4, generated_at=now))

    first_query, first_update = col.calls[0][1:]
    assert first_query == {"_id": "a", "content_version": STALE_VERSION_FILTER}
    assert first_update["$set"]["content_version"] == 1
    assert first_update["$set"]["flagged_at"] is None

    second_query, second_update = col.calls[1][1:]
    assert second_query == {"_id": "a", "content_version": 4}
    assert second_update["$set"]["content_version"] == 5


def test_mongo_record_edit_uses_monotonic_schedule(now):
    col = FakeCollection()

    assert asyncio.run(MongoRecordStore(col).record_edit("a", now))

    _, query, pipeline = col.calls[0]
    assert query == {"_id": "a"}
    assert pipeline[0]["$set"]["scheduled_refresh_at"] == {"$max": ["$scheduled_refresh_at", now]}


def test_mongo_driver_errors_become_persistence_errors(now):
    col = FakeCollection(error=ServerSelectionTimeoutError("no primary"))
    store = MongoRecordStore(col)

    with pytest.raises(PersistenceError) as exc_info:
        asyncio.run(store.flag_for_refresh("a"))
    assert exc_info.value.operation == "flag_for_refresh"
    assert exc_info.value.record_id == "a"

    with pytest.raises(PersistenceError):
        asyncio.run(store.find_flagged(3))


def test_mongo_sweep_skips_malformed_documents(now):
    col = FakeCollection(
        docs=[
            {"_id": "bad", "scheduled_refresh_at": now - 2 * HOUR, "metadata": "oops"},
            {"_id": "good", "scheduled_refresh_at": now - 2 * HOUR},
        ]
    )

    report = asyncio.run(CooldownScheduler(MongoRecordStore(col)).sweep(HOUR, now))

    assert report.flagged_ids == ["good"]
    assert [call[1]["_id"] for call in col.calls if call[0] == "update_one"] == ["good"]
    assert len(report.skipped) == 1
    assert report.skipped[0].record_id == "bad"
    assert report.skipped[0].reason == "malformed record: metadata is a str, expected a mapping"


def test_mongo_batch_fails_malformed_documents_and_continues(now, executor, scripted_generator):
    col = FakeCollection(
        docs=[
            {"_id": "bad", "content_version": 0, "generated_content": "oops"},
            {"_id": "good", "name": "Good Co", "content_version": 0},
        ]
    )
    generator = scripted_generator()
    runner = BatchEnrichmentRunner(MongoRecordStore(col), generator, executor=executor, clock=lambda: now)

    summary = asyncio.run(runner.run_batch(5))

    assert (summary.attempted, summary.succeeded, summary.failed) == (2, 1, 1)
    assert generator.calls == ["good"]
    assert summary.outcomes[0].record_id == "bad"
    assert summary.outcomes[0].error.startswith("malformed record: generated_content")
    assert [call[1]["_id"] for call in col.calls if call[0] == "update_one"] == ["good"]
