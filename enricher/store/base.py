"""Narrow interface the pipeline uses to read and mutate records."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Protocol

from models.record import RefreshableRecord


class RecordStore(Protocol):
    """Async record store.

    Every mutation is a single conditional update on one record, so a
    concurrent sweep, edit or commit can never leave a record half-written.
    Implementations raise ``PersistenceError`` on store failures.
    """

    async def find_records_with_expired_cooldown(
        self, now: datetime, cooldown: timedelta
    ) -> List[RefreshableRecord]:
        """Records whose ``scheduled_refresh_at`` is set and at least ``cooldown`` old."""
        ...

    async def flag_for_refresh(
        self,
        record_id: str,
        *,
        cutoff: Optional[datetime] = None,
        flagged_at: Optional[datetime] = None,
    ) -> bool:
        """Mark content stale and consume the pending refresh.

        Returns True only if this call performed the flag.
        """
        ...

    async def find_flagged(self, limit: int) -> List[RefreshableRecord]:
        """Up to ``limit`` stale records, oldest flag first."""
        ...

    async def commit_generated_content(
        self,
        record_id: str,
        content: Mapping[str, Any],
        expected_prior_version: int,
        *,
        generated_at: Optional[datetime] = None,
    ) -> bool:
        """Replace content and bump the version if the version still matches."""
        ...

    async def record_edit(self, record_id: str, now: datetime) -> bool:
        """Edit path contract: stamp the edit and reset the cooldown clock."""
        ...


__all__ = ["RecordStore"]
