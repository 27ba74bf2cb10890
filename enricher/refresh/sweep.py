"""
Cooldown sweep: flag records whose edits have been quiet long enough.

Edits keep pushing ``scheduled_refresh_at`` forward, so a burst of edits ends
in exactly one flag once the cooldown passes after the last edit. Flagging
only marks content stale; the batch runner regenerates it later.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from enricher.refresh.cooldown import cooldown_cutoff, is_cooldown_elapsed, remaining_cooldown
from enricher.store.base import RecordStore
from enricher.utils.logger import get_logger

log = get_logger(__name__)


@dataclass(slots=True)
class FlaggedRecord:
    record_id: str
    name: Optional[str]
    scheduled_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"record_id": self.record_id, "name": self.name, "scheduled_at": self.scheduled_at.isoformat()}


@dataclass(slots=True)
class SkippedRecord:
    record_id: Optional[str]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"record_id": self.record_id, "reason": self.reason}


@dataclass(slots=True)
class SweepReport:
    swept_at: datetime
    cooldown: timedelta
    flagged: List[FlaggedRecord] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)
    already_handled: List[str] = field(default_factory=list)

    @property
    def flagged_ids(self) -> List[str]:
        return [item.record_id for item in self.flagged]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "swept_at": self.swept_at.isoformat(),
            "cooldown_seconds": self.cooldown.total_seconds(),
            "flagged": [item.to_dict() for item in self.flagged],
            "skipped": [item.to_dict() for item in self.skipped],
            "already_handled": list(self.already_handled),
        }


class CooldownScheduler:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def sweep(self, cooldown: timedelta, now: datetime) -> SweepReport:
        """Flag every record whose cooldown has elapsed at ``now``.

        A record with inconsistent state is skipped and reported. Store
        failures propagate to the caller.
        """
        if cooldown < timedelta(0):
            raise ValueError("cooldown must be non-negative")

        report = SweepReport(swept_at=now, cooldown=cooldown)
        cutoff = cooldown_cutoff(now, cooldown)
        candidates = await self.store.find_records_with_expired_cooldown(now, cooldown)

        for record in candidates:
            if not record.id:
                report.skipped.append(SkippedRecord(None, "missing identifier"))
                log.warning(f"[sweep] SKIP record without identifier (name={record.name!r})")
                continue
            if record.problem:
                report.skipped.append(SkippedRecord(record.id, f"malformed record: {record.problem}"))
                log.warning(f"[sweep] SKIP {record.id}: {record.problem}")
                continue
            if not record.refresh_pending:
                report.skipped.append(SkippedRecord(record.id, "no pending refresh"))
                log.warning(f"[sweep] SKIP {record.id}: matched without a scheduled refresh")
                continue
            if not is_cooldown_elapsed(record.scheduled_refresh_at, now, cooldown):
                report.skipped.append(SkippedRecord(record.id, "cooldown not elapsed"))
                left = remaining_cooldown(record.scheduled_refresh_at, now, cooldown)
                log.warning(
                    f"[sweep] SKIP {record.id}: store returned a record still cooling down "
                    f"({left.total_seconds():.0f}s left)"
                )
                continue

            flagged = await self.store.flag_for_refresh(record.id, cutoff=cutoff, flagged_at=now)
            if not flagged:
                report.already_handled.append(record.id)
                log.info(f"[sweep] {record.id} was flagged or edited concurrently, leaving it")
                continue

            report.flagged.append(FlaggedRecord(record.id, record.name, record.scheduled_refresh_at))
            hours_since = (now - record.scheduled_refresh_at).total_seconds() / 3600
            log.info(
                f"[sweep] FLAG {record.label} last changed {record.scheduled_refresh_at.isoformat()} "
                f"({hours_since:.1f}h ago)"
            )

        if report.flagged:
            log.info(f"[sweep] Flagged {len(report.flagged)} record(s) for refresh")
        else:
            log.info("[sweep] No records ready for refresh (cooldown period not elapsed)")
        return report


async def sweep(store: RecordStore, cooldown: timedelta, now: datetime) -> SweepReport:
    return await CooldownScheduler(store).sweep(cooldown, now)


__all__ = ["CooldownScheduler", "FlaggedRecord", "SkippedRecord", "SweepReport", "sweep"]
