"""Per-run cap on how many flagged records an enrichment batch may touch."""

from __future__ import annotations


class RefreshBudget:
    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def allow(self) -> bool:
        return self.used < self.limit

    def consume(self) -> None:
        if not self.allow():
            raise RuntimeError(f"Refresh budget of {self.limit} record(s) exhausted")
        self.used += 1


__all__ = ["RefreshBudget"]
