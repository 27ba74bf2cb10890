"""Dict-backed record store for tests and local dry runs."""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from models.content import as_payload
from models.record import STALE_CONTENT_VERSION, RefreshableRecord, utc_now

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryRecordStore:
    def __init__(self, records: Optional[Iterable[RefreshableRecord]] = None) -> None:
        self._records: Dict[str, RefreshableRecord] = {}
        self._lock = asyncio.Lock()
        for record in records or []:
            self._records[record.id] = copy.deepcopy(record)

    def upsert(self, record: RefreshableRecord) -> None:
        self._records[record.id] = copy.deepcopy(record)

    def get(self, record_id: str) -> Optional[RefreshableRecord]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record else None

    def all(self) -> List[RefreshableRecord]:
        return [copy.deepcopy(record) for record in self._records.values()]

    async def find_records_with_expired_cooldown(
        self, now: datetime, cooldown: timedelta
    ) -> List[RefreshableRecord]:
        async with self._lock:
            matches = [
                record
                for record in self._records.values()
                if record.scheduled_refresh_at is not None and now - record.scheduled_refresh_at >= cooldown
            ]
            matches.sort(key=lambda rec: (rec.scheduled_refresh_at, rec.id))
            return [copy.deepcopy(record) for record in matches]

    async def flag_for_refresh(
        self,
        record_id: str,
        *,
        cutoff: Optional[datetime] = None,
        flagged_at: Optional[datetime] = None,
    ) -> bool:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None or record.scheduled_refresh_at is None:
                return False
            if cutoff is not None and record.scheduled_refresh_at > cutoff:
                # edited again after the sweep read it
                return False
            record.content_version = STALE_CONTENT_VERSION
            record.scheduled_refresh_at = None
            record.flagged_at = flagged_at or utc_now()
            return True

    async def find_flagged(self, limit: int) -> List[RefreshableRecord]:
        async with self._lock:
            stale = [record for record in self._records.values() if record.is_stale]
            stale.sort(
                key=lambda rec: (rec.flagged_at is not None, rec.flagged_at or _EPOCH, rec.id)
            )
            return [copy.deepcopy(record) for record in stale[: max(limit, 0)]]

    async def commit_generated_content(
        self,
        record_id: str,
        content: Mapping[str, Any],
        expected_prior_version: int,
        *,
        generated_at: Optional[datetime] = None,
    ) -> bool:
        payload = as_payload(content)
        async with self._lock:
            record = self._records.get(record_id)
            if record is None or record.content_version != expected_prior_version:
                return False
            record.generated_content = copy.deepcopy(payload)
            record.content_version = expected_prior_version + 1
            record.flagged_at = None
            record.generated_at = generated_at or utc_now()
            return True

    async def record_edit(self, record_id: str, now: datetime) -> bool:
        async with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return False
            record.record_edit(now)
            return True


__all__ = ["InMemoryRecordStore"]
