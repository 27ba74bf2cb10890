"""Refresh scheduling helpers: cooldown gate, sweep and per-run budget."""

from .budget import RefreshBudget
from .cooldown import cooldown_cutoff, is_cooldown_elapsed, remaining_cooldown
from .sweep import CooldownScheduler, FlaggedRecord, SkippedRecord, SweepReport, sweep

__all__ = [
    "RefreshBudget",
    "cooldown_cutoff",
    "is_cooldown_elapsed",
    "remaining_cooldown",
    "CooldownScheduler",
    "FlaggedRecord",
    "SkippedRecord",
    "SweepReport",
    "sweep",
]
