"""
Hybrid BM25 + vector search and ranking over patient record chunks.
"""

from .bm25 import BM25Index, SimplifiedBM25, tokenize
from .config import SearchSettings, create_engine, create_indexer, load_environment
from .errors import ChartSearchError, InvalidSearchOptions, MissingPatientFilter
from .hybrid import HybridSearchEngine
from .indexer import DocumentIndexer
from .models import (
    BatchAddResult,
    ChunkMetadata,
    ChunkRecord,
    Document,
    IndexStats,
    SearchFilters,
    SearchOptions,
    SearchResult,
)
from .scoring import QueryIntent, RetrievalScorer, ScoringWeights, StructuredQuery

__version__ = "0.1.0"

__all__ = [
    "BM25Index",
    "SimplifiedBM25",
    "tokenize",
    "SearchSettings",
    "create_engine",
    "create_indexer",
    "load_environment",
    "ChartSearchError",
    "InvalidSearchOptions",
    "MissingPatientFilter",
    "HybridSearchEngine",
    "DocumentIndexer",
    "BatchAddResult",
    "ChunkMetadata",
    "ChunkRecord",
    "Document",
    "IndexStats",
    "SearchFilters",
    "SearchOptions",
    "SearchResult",
    "QueryIntent",
    "RetrievalScorer",
    "ScoringWeights",
    "StructuredQuery",
]
