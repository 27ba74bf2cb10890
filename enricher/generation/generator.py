"""
Narrative generator: search for facts, then synthesize the narrative JSON.

This is the fallible remote collaborator the batch runner drives through the
backoff executor. Any failure, including an unusable model response, is
raised as ``GenerationError`` so the executor can retry it.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from enricher.core.config import Config
from enricher.core.errors import GenerationError
from enricher.generation.prompts import NARRATIVE_PROMPT, NARRATIVE_QUERIES, SECTION_HEADINGS
from enricher.generation.search import SearchClient, SearchResult, combine_results_compact
from enricher.generation.synthesis import SynthesisClient, extract_json_object
from enricher.utils.logger import get_logger
from models.content import NarrativeContent
from models.record import RefreshableRecord

log = get_logger(__name__)


class ContentGenerator(Protocol):
    async def generate(self, record: RefreshableRecord) -> Any:
        ...


def _money(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and value:
        return f"${value:,.0f}"
    return None


def build_record_context(record: RefreshableRecord) -> str:
    meta: Mapping[str, Any] = record.metadata or {}
    lines: List[Optional[str]] = [f"Product: {record.label}"]
    if meta.get("season"):
        lines.append(f"Season: {meta['season']}")
    if meta.get("episode_number"):
        lines.append(f"Episode: {meta['episode_number']}")
    if meta.get("deal_outcome"):
        lines.append(f"Deal Outcome: {meta['deal_outcome']}")
    if meta.get("status"):
        lines.append(f"Current Status: {meta['status']}")
    asking = _money(meta.get("asking_amount"))
    if asking:
        lines.append(f"Asking: {asking} for {meta.get('asking_equity')}%")
    deal = _money(meta.get("deal_amount"))
    if deal:
        lines.append(f"Deal: {deal} for {meta.get('deal_equity')}%")
    founders = meta.get("founder_names") or []
    if founders:
        lines.append(f"Founders: {', '.join(str(name) for name in founders)}")
    return "\n".join(line for line in lines if line)


def parse_narrative(text: str) -> NarrativeContent:
    raw = extract_json_object(text)
    if raw is None:
        raise GenerationError("No JSON object found in synthesis response", provider="openai")
    try:
        content = NarrativeContent.model_validate(json.loads(raw))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise GenerationError(f"Synthesis response did not match narrative schema: {exc}", provider="openai") from exc
    if not content.filled_sections():
        raise GenerationError("Synthesis response contained no narrative sections", provider="openai")
    return content


class NarrativeGenerator:
    def __init__(
        self,
        search: SearchClient,
        synthesis: SynthesisClient,
        *,
        context_chars: Optional[int] = None,
    ) -> None:
        self.search = search
        self.synthesis = synthesis
        self.context_chars = context_chars or int(Config.get("generation", "context_chars", default=4000))

    async def close(self) -> None:
        await self.search.close()
        await self.synthesis.close()

    async def _gather_search_results(self, name: str) -> Dict[str, List[SearchResult]]:
        keys = [key for key, _ in NARRATIVE_QUERIES]
        results = await asyncio.gather(
            *(self.search.search(template.format(name=name)) for _, template in NARRATIVE_QUERIES)
        )
        return dict(zip(keys, results))

    def _compose_search_context(self, results: Dict[str, List[SearchResult]]) -> str:
        blocks: List[str] = []
        for key, _ in NARRATIVE_QUERIES:
            blocks.append(SECTION_HEADINGS[key])
            blocks.append(combine_results_compact(results.get(key, []), self.context_chars))
            blocks.append("")
        return "\n".join(blocks).rstrip()

    async def generate(self, record: RefreshableRecord) -> NarrativeContent:
        log.info(f"Generating narrative for {record.label}")
        results = await self._gather_search_results(record.label)
        user_prompt = f"{build_record_context(record)}\n\nSearch Results:\n{self._compose_search_context(results)}"
        text = await self.synthesis.complete(NARRATIVE_PROMPT, user_prompt)
        content = parse_narrative(text)
        log.info(f"Generated {len(content.filled_sections())}/6 sections for {record.label}")
        return content


__all__ = ["ContentGenerator", "NarrativeGenerator", "build_record_context", "parse_narrative"]
