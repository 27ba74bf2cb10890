"""Cooldown arithmetic: a record may be flagged once edits have gone quiet."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional


def cooldown_cutoff(now: datetime, cooldown: timedelta) -> datetime:
    """Latest ``scheduled_refresh_at`` that counts as cooled down at ``now``."""
    return now - cooldown


def is_cooldown_elapsed(scheduled_at: Optional[datetime], now: datetime, cooldown: timedelta) -> bool:
    if scheduled_at is None:
        return False
    return now - scheduled_at >= cooldown


def remaining_cooldown(scheduled_at: Optional[datetime], now: datetime, cooldown: timedelta) -> timedelta:
    if scheduled_at is None:
        return timedelta(0)
    return max(scheduled_at + cooldown - now, timedelta(0))


__all__ = ["cooldown_cutoff", "is_cooldown_elapsed", "remaining_cooldown"]
