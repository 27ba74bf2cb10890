"""Chat-completion client that turns search context into structured JSON."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import httpx

from enricher.core.config import Config
from enricher.core.errors import GenerationError
from enricher.utils.logger import get_logger

log = get_logger(__name__)

DEFAULT_SYNTHESIS_URL = "https://api.openai.com/v1/chat/completions"

# USD per 1M tokens for the default model
INPUT_COST_PER_1M = 0.15
OUTPUT_COST_PER_1M = 0.60

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass(slots=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def track(self, prompt: int, completion: int, total: int) -> None:
        self.prompt += prompt
        self.completion += completion
        self.total += total

    def estimate_cost(self) -> float:
        return (self.prompt / 1_000_000) * INPUT_COST_PER_1M + (self.completion / 1_000_000) * OUTPUT_COST_PER_1M

    def reset(self) -> None:
        self.prompt = self.completion = self.total = 0


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block in ``text``, ignoring code fences."""
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    start = cleaned.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(cleaned)):
        char = cleaned[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return cleaned[start : idx + 1]
    return None


class SynthesisClient:
    """OpenAI-compatible chat completions client."""

    def __init__(
        self,
        api_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key
        self.url = url or Config.get("generation", "synthesis_url", default=DEFAULT_SYNTHESIS_URL)
        self.model = model or Config.get("generation", "model", default="gpt-4.1-mini")
        self.max_tokens = max_tokens or int(Config.get("generation", "max_tokens", default=2500))
        self.temperature = (
            temperature if temperature is not None else float(Config.get("generation", "temperature", default=0.5))
        )
        timeout = timeout or float(Config.get("generation", "request_timeout_seconds", default=300))
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.usage = TokenUsage()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            response = await self.client.post(self.url, json=body, headers=headers)
        except httpx.RequestError as exc:
            raise GenerationError(f"Synthesis request failed: {exc}", provider="openai") from exc

        if response.status_code >= 400:
            raise GenerationError(
                f"Synthesis error: {response.status_code} {response.text[:200]}",
                provider="openai",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise GenerationError("Synthesis returned invalid JSON", provider="openai") from exc

        usage = data.get("usage") or {}
        self.usage.track(
            int(usage.get("prompt_tokens") or 0),
            int(usage.get("completion_tokens") or 0),
            int(usage.get("total_tokens") or 0),
        )

        choices = data.get("choices") or []
        if not choices:
            raise GenerationError("Synthesis returned no choices", provider="openai")
        return (choices[0].get("message") or {}).get("content") or ""


__all__ = ["SynthesisClient", "TokenUsage", "extract_json_object"]
