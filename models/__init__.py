"""Model exports for the narrative refresher."""

from .content import NARRATIVE_SECTIONS, NarrativeContent, as_payload
from .record import STALE_CONTENT_VERSION, RefreshableRecord, utc_now

__all__ = [
    "NARRATIVE_SECTIONS",
    "NarrativeContent",
    "RefreshableRecord",
    "STALE_CONTENT_VERSION",
    "as_payload",
    "utc_now",
]
