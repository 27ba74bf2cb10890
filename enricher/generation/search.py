"""Web search client used to gather facts before synthesis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from enricher.core.config import Config
from enricher.core.errors import GenerationError
from enricher.utils.logger import get_logger

log = get_logger(__name__)

DEFAULT_SEARCH_URL = "https://api.tavily.com/search"


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str
    content: str
    score: Optional[float] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SearchResult":
        score = payload.get("score")
        return cls(
            title=str(payload.get("title") or ""),
            url=str(payload.get("url") or ""),
            content=str(payload.get("content") or ""),
            score=float(score) if isinstance(score, (int, float)) else None,
        )


def combine_results_compact(results: List[SearchResult], max_chars: int = 12000) -> str:
    """Join results as ``[title]\\ncontent`` blocks until ``max_chars`` would be exceeded."""
    entries: List[str] = []
    length = 0
    for item in results:
        entry = f"[{item.title}]\n{item.content}"
        if length + len(entry) > max_chars:
            break
        entries.append(entry)
        length += len(entry)
    return "\n\n".join(entries)


class SearchClient:
    """Tavily-compatible search API client."""

    def __init__(
        self,
        api_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        url: Optional[str] = None,
        search_depth: Optional[str] = None,
        max_results: Optional[int] = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.url = url or Config.get("generation", "search_url", default=DEFAULT_SEARCH_URL)
        self.search_depth = search_depth or Config.get("generation", "search_depth", default="advanced")
        self.max_results = max_results or int(Config.get("generation", "max_results", default=10))
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def search(self, query: str, *, max_results: Optional[int] = None) -> List[SearchResult]:
        body = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": self.search_depth,
            "include_raw_content": False,
            "max_results": max_results or self.max_results,
        }
        log.debug(f"Search: {query[:50]}")
        try:
            response = await self.client.post(self.url, json=body)
        except httpx.RequestError as exc:
            raise GenerationError(f"Search request failed: {exc}", provider="tavily") from exc

        if response.status_code >= 400:
            raise GenerationError(
                f"Search error: {response.status_code} {response.text[:200]}",
                provider="tavily",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise GenerationError("Search returned invalid JSON", provider="tavily") from exc

        return [SearchResult.from_dict(item) for item in data.get("results") or [] if isinstance(item, dict)]


__all__ = ["SearchClient", "SearchResult", "combine_results_compact"]
