"""Search and synthesis clients that produce narrative content."""

from .generator import ContentGenerator, NarrativeGenerator, build_record_context, parse_narrative
from .search import SearchClient, SearchResult, combine_results_compact
from .synthesis import SynthesisClient, TokenUsage, extract_json_object

__all__ = [
    "ContentGenerator",
    "NarrativeGenerator",
    "SearchClient",
    "SearchResult",
    "SynthesisClient",
    "TokenUsage",
    "build_record_context",
    "combine_results_compact",
    "extract_json_object",
    "parse_narrative",
]
