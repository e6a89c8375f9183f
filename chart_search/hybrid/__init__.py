"""
Hybrid search: metadata pre-filter → BM25 + vector search → alpha fusion
with recency boost → snippets.
"""

from .engine import HybridSearchEngine, coerce_options
from .filters import MetadataPreFilter, coerce_filters
from .fusion import combine_scores, normalize_scores, validate_alpha
from .recency import DEFAULT_HALF_LIFE_DAYS, exponential_decay, half_life_decay
from .snippets import extract_citation_snippet, extract_snippet

__all__ = [
    "HybridSearchEngine",
    "coerce_options",
    "MetadataPreFilter",
    "coerce_filters",
    "combine_scores",
    "normalize_scores",
    "validate_alpha",
    "DEFAULT_HALF_LIFE_DAYS",
    "exponential_decay",
    "half_life_decay",
    "extract_citation_snippet",
    "extract_snippet",
]
