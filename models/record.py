"""Domain model for content records that go through the refresh pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from enricher.core.errors import MalformedRecordError

STALE_CONTENT_VERSION = 0


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _check_document(payload: Mapping[str, Any], raw_id: Any) -> None:
    if raw_id is None or str(raw_id).strip() == "":
        raise MalformedRecordError("Record is missing an identifier", field="id")
    for key in ("generated_content", "metadata"):
        value = payload.get(key)
        if value is not None and not isinstance(value, Mapping):
            raise MalformedRecordError(f"{key} is a {type(value).__name__}, expected a mapping", field=key)
    try:
        int(payload.get("content_version") or 0)
    except (TypeError, ValueError):
        raise MalformedRecordError("content_version is not an integer", field="content_version") from None
    for key in ("last_edited_at", "scheduled_refresh_at", "flagged_at", "generated_at"):
        value = payload.get(key)
        if value not in (None, "") and _parse_timestamp(value) is None:
            raise MalformedRecordError(f"{key} is not a timestamp: {value!r}", field=key)


@dataclass(slots=True)
class RefreshableRecord:
    """Snapshot of a record whose generated content is kept fresh."""

    id: str
    name: Optional[str] = None
    last_edited_at: Optional[datetime] = None
    scheduled_refresh_at: Optional[datetime] = None
    content_version: int = STALE_CONTENT_VERSION
    generated_content: Optional[Dict[str, Any]] = None
    flagged_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    # set when the stored document failed strict parsing; never persisted
    problem: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        self.id = str(self.id).strip() if self.id is not None else ""
        self.last_edited_at = _parse_timestamp(self.last_edited_at)
        self.scheduled_refresh_at = _parse_timestamp(self.scheduled_refresh_at)
        self.flagged_at = _parse_timestamp(self.flagged_at)
        self.generated_at = _parse_timestamp(self.generated_at)
        self.content_version = max(int(self.content_version or 0), STALE_CONTENT_VERSION)

    @property
    def is_stale(self) -> bool:
        return self.content_version == STALE_CONTENT_VERSION

    @property
    def refresh_pending(self) -> bool:
        return self.scheduled_refresh_at is not None

    @property
    def label(self) -> str:
        return self.name or self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "last_edited_at": _iso(self.last_edited_at),
            "scheduled_refresh_at": _iso(self.scheduled_refresh_at),
            "content_version": self.content_version,
            "generated_content": self.generated_content,
            "flagged_at": _iso(self.flagged_at),
            "generated_at": _iso(self.generated_at),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, strict: bool = False) -> "RefreshableRecord":
        """Build a record from a stored document.

        Mongo documents carry the identifier under ``_id``; plain dicts use
        ``id``. Fields of the wrong shape are dropped. With ``strict`` they
        raise :class:`MalformedRecordError` instead, as does a missing id.
        """
        raw_id = payload.get("id", payload.get("_id"))
        if strict:
            _check_document(payload, raw_id)

        try:
            version = int(payload.get("content_version") or 0)
        except (TypeError, ValueError):
            version = STALE_CONTENT_VERSION

        content = payload.get("generated_content")
        metadata = payload.get("metadata")
        return cls(
            id=raw_id if raw_id is not None else "",
            name=payload.get("name"),
            last_edited_at=payload.get("last_edited_at"),
            scheduled_refresh_at=payload.get("scheduled_refresh_at"),
            content_version=version,
            generated_content=dict(content) if isinstance(content, Mapping) else None,
            flagged_at=payload.get("flagged_at"),
            generated_at=payload.get("generated_at"),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    def record_edit(self, now: datetime) -> None:
        """Apply the edit contract: every edit resets the cooldown clock."""
        self.last_edited_at = now
        if self.scheduled_refresh_at is None or now > self.scheduled_refresh_at:
            self.scheduled_refresh_at = now


__all__ = ["RefreshableRecord", "STALE_CONTENT_VERSION", "utc_now"]
