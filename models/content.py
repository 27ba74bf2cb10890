"""Generated narrative payload stored on refreshed records."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

NARRATIVE_SECTIONS = (
    "origin_story",
    "pitch_journey",
    "deal_dynamics",
    "after_tank",
    "current_status",
    "where_to_buy",
)


class NarrativeContent(BaseModel):
    """Six narrative sections; a section with no supporting facts stays null."""

    origin_story: Optional[str] = None
    pitch_journey: Optional[str] = None
    deal_dynamics: Optional[str] = None
    after_tank: Optional[str] = None
    current_status: Optional[str] = None
    where_to_buy: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def filled_sections(self) -> List[str]:
        return [name for name in NARRATIVE_SECTIONS if getattr(self, name)]


def as_payload(content: Any) -> Dict[str, Any]:
    """Normalise generated content into the plain dict the store persists."""
    if isinstance(content, BaseModel):
        return content.model_dump()
    if isinstance(content, Mapping):
        return dict(content)
    raise TypeError(f"Unsupported generated content type: {type(content).__name__}")


__all__ = ["NARRATIVE_SECTIONS", "NarrativeContent", "as_payload"]
