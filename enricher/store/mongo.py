"""
MongoDB record store.

Each mutation is one conditional ``update_one`` so the version / schedule
checks and the write happen atomically on the server.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from enricher.core.errors import MalformedRecordError, PersistenceError
from enricher.utils.logger import get_logger
from models.content import as_payload
from models.record import STALE_CONTENT_VERSION, RefreshableRecord, utc_now

log = get_logger(__name__)

STALE_VERSION_FILTER: Dict[str, Any] = {"$in": [STALE_CONTENT_VERSION, None]}


@contextmanager
def _store_operation(operation: str, record_id: Optional[str] = None):
    try:
        yield
    except PyMongoError as exc:
        raise PersistenceError(
            f"Record store {operation} failed: {exc}",
            operation=operation,
            record_id=record_id,
        ) from exc


def _parse_documents(docs: List[Mapping[str, Any]]) -> List[RefreshableRecord]:
    """Parse query results one by one so a single bad document cannot sink the query.

    A malformed document comes back as a lenient record with ``problem`` set,
    leaving the caller to skip and report it.
    """
    records = []
    for doc in docs:
        try:
            records.append(RefreshableRecord.from_dict(doc, strict=True))
        except MalformedRecordError as exc:
            log.warning(f"Malformed record document {doc.get('_id')!r}: {exc.message}")
            record = RefreshableRecord.from_dict(doc)
            record.problem = exc.message
            records.append(record)
    return records


class MongoRecordStore:
    """Record store backed by a motor collection."""

    def __init__(self, collection) -> None:
        self._col = collection

    async def ensure_indexes(self) -> None:
        with _store_operation("ensure_indexes"):
            await self._col.create_index("scheduled_refresh_at")
            await self._col.create_index([("content_version", ASCENDING), ("flagged_at", ASCENDING)])
        log.info("Record store indexes ensured")

    async def get(self, record_id: str) -> Optional[RefreshableRecord]:
        with _store_operation("get", record_id):
            doc = await self._col.find_one({"_id": record_id})
        return RefreshableRecord.from_dict(doc) if doc else None

    async def upsert(self, record: RefreshableRecord) -> None:
        doc = record.to_dict()
        doc.pop("id")
        # keep datetimes native in Mongo
        for key in ("last_edited_at", "scheduled_refresh_at", "flagged_at", "generated_at"):
            doc[key] = getattr(record, key)
        with _store_operation("upsert", record.id):
            await self._col.replace_one({"_id": record.id}, doc, upsert=True)

    async def find_records_with_expired_cooldown(
        self, now: datetime, cooldown: timedelta
    ) -> List[RefreshableRecord]:
        cutoff = now - cooldown
        with _store_operation("find_records_with_expired_cooldown"):
            cursor = self._col.find({"scheduled_refresh_at": {"$ne": None, "$lte": cutoff}}).sort(
                [("scheduled_refresh_at", ASCENDING), ("_id", ASCENDING)]
            )
            docs = [doc async for doc in cursor]
        return _parse_documents(docs)

    async def flag_for_refresh(
        self,
        record_id: str,
        *,
        cutoff: Optional[datetime] = None,
        flagged_at: Optional[datetime] = None,
    ) -> bool:
        schedule_filter: Dict[str, Any] = {"$ne": None}
        if cutoff is not None:
            schedule_filter["$lte"] = cutoff
        with _store_operation("flag_for_refresh", record_id):
            result = await self._col.update_one(
                {"_id": record_id, "scheduled_refresh_at": schedule_filter},
                {
                    "$set": {
                        "content_version": STALE_CONTENT_VERSION,
                        "scheduled_refresh_at": None,
                        "flagged_at": flagged_at or utc_now(),
                    }
                },
            )
        return result.modified_count == 1

    async def find_flagged(self, limit: int) -> List[RefreshableRecord]:
        if limit <= 0:
            return []
        with _store_operation("find_flagged"):
            cursor = (
                self._col.find({"content_version": STALE_VERSION_FILTER})
                .sort([("flagged_at", ASCENDING), ("_id", ASCENDING)])
                .limit(limit)
            )
            docs = [doc async for doc in cursor]
        return _parse_documents(docs)

    async def commit_generated_content(
        self,
        record_id: str,
        content: Mapping[str, Any],
        expected_prior_version: int,
        *,
        generated_at: Optional[datetime] = None,
    ) -> bool:
        version_filter: Any = expected_prior_version
        if expected_prior_version == STALE_CONTENT_VERSION:
            version_filter = STALE_VERSION_FILTER
        with _store_operation("commit_generated_content", record_id):
            result = await self._col.update_one(
                {"_id": record_id, "content_version": version_filter},
                {
                    "$set": {
                        "generated_content": as_payload(content),
                        "content_version": expected_prior_version + 1,
                        "generated_at": generated_at or utc_now(),
                        "flagged_at": None,
                    }
                },
            )
        return result.modified_count == 1

    async def record_edit(self, record_id: str, now: datetime) -> bool:
        # pipeline update: $max ignores a null schedule, so the clock only moves forward
        with _store_operation("record_edit", record_id):
            result = await self._col.update_one(
                {"_id": record_id},
                [
                    {
                        "$set": {
                            "last_edited_at": now,
                            "scheduled_refresh_at": {"$max": ["$scheduled_refresh_at", now]},
                        }
                    }
                ],
            )
        return result.matched_count == 1


__all__ = ["MongoRecordStore"]
