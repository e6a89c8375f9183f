"""
Data model for hybrid search over patient record chunks.

Records flow through the engine in three shapes:
- Document / ChunkRecord: what gets indexed (keyword index + vector index + metadata store)
- ScoredChunk / CombinedResult: per-query intermediate scores
- SearchResult: final enriched result (snippet + metadata), never persisted

Request-side objects (SearchOptions, SearchFilters) are pydantic models so that
malformed input is rejected before any index work happens.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

Timestamp = Union[str, datetime]


@dataclass
class ChunkMetadata:
    """Metadata shared by the vector index and the metadata store"""
    artifact_id: str
    patient_id: str
    artifact_type: str
    occurred_at: Timestamp
    author: Optional[str] = None
    source_url: Optional[str] = None

    def to_dict(self) -> dict:
        occurred_at = self.occurred_at
        if isinstance(occurred_at, datetime):
            occurred_at = occurred_at.isoformat()
        return {
            "artifact_id": self.artifact_id,
            "patient_id": self.patient_id,
            "artifact_type": self.artifact_type,
            "occurred_at": occurred_at,
            "author": self.author,
            "source_url": self.source_url,
        }


@dataclass
class Document:
    """Unit of indexing: one chunk of one clinical artifact"""
    chunk_id: str
    text: str
    embedding: List[float]
    metadata: ChunkMetadata

    def to_record(self) -> "ChunkRecord":
        """Row for the metadata store"""
        return ChunkRecord(
            chunk_id=self.chunk_id,
            artifact_id=self.metadata.artifact_id,
            patient_id=self.metadata.patient_id,
            artifact_type=self.metadata.artifact_type,
            occurred_at=self.metadata.occurred_at,
            text=self.text,
            author=self.metadata.author,
            source_url=self.metadata.source_url,
        )


@dataclass
class ChunkRecord:
    """Metadata store row (full chunk text + flattened metadata)"""
    chunk_id: str
    artifact_id: str
    patient_id: str
    artifact_type: str
    occurred_at: Timestamp
    text: str
    author: Optional[str] = None
    source_url: Optional[str] = None
    char_offsets: Optional[List[int]] = None

    @property
    def metadata(self) -> ChunkMetadata:
        return ChunkMetadata(
            artifact_id=self.artifact_id,
            patient_id=self.patient_id,
            artifact_type=self.artifact_type,
            occurred_at=self.occurred_at,
            author=self.author,
            source_url=self.source_url,
        )


@dataclass
class BM25Document:
    """Keyword index entry, derived from text at insertion time"""
    chunk_id: str
    tokens: List[str]
    length: int
    term_freqs: Dict[str, int]


@dataclass
class ScoredChunk:
    """Single-channel search hit (semantic or keyword)"""
    chunk_id: str
    score: float


@dataclass
class CombinedResult:
    """Fused score with every component kept for explainability"""
    chunk_id: str
    score: float
    semantic_score: float
    keyword_score: float
    recency_boost: float


@dataclass
class SearchResult:
    """Final ranked result returned by HybridSearchEngine.search()"""
    chunk_id: str
    score: float
    semantic_score: float
    keyword_score: float
    recency_boost: float
    snippet: str
    metadata: ChunkMetadata


@dataclass
class VectorHit:
    """Vector index search result"""
    id: str
    score: float
    metadata: Optional[dict] = None


@dataclass
class IndexStats:
    total_documents: int
    total_terms: int
    average_doc_length: float


@dataclass
class FailedDocument:
    chunk_id: str
    error: str


@dataclass
class BatchAddResult:
    """Outcome of add_documents(): successes stay indexed, failures are listed"""
    indexed: List[str] = field(default_factory=list)
    failed: List[FailedDocument] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def add_failure(self, chunk_id: str, error: str) -> None:
        self.failed.append(FailedDocument(chunk_id=chunk_id, error=error))


@dataclass
class ChunkFilter:
    """Criteria handed to MetadataStore.filter_chunks() (all AND-combined)"""
    patient_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    artifact_types: Optional[List[str]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SearchFilters(BaseModel):
    """Metadata pre-filter (date range inclusive at both ends)"""
    patient_id: Optional[str] = Field(default=None, description="Patient scope")
    date_from: Optional[datetime] = Field(default=None, description="ISO 8601, inclusive")
    date_to: Optional[datetime] = Field(default=None, description="ISO 8601, inclusive")
    artifact_types: Optional[List[str]] = Field(
        default=None,
        description="Artifact types to keep (empty list = no type restriction)",
    )

    @field_validator("date_from", "date_to")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_date_range(self) -> "SearchFilters":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError(
                f"date_from ({self.date_from.isoformat()}) is after date_to ({self.date_to.isoformat()})"
            )
        return self


class SearchOptions(BaseModel):
    """Per-query options for HybridSearchEngine.search()"""
    k: int = Field(..., ge=1, description="Number of results to return")
    alpha: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Semantic weight (1.0 = pure semantic, 0.0 = pure keyword)",
    )
    filters: Optional[SearchFilters] = None
    recency_boost: bool = Field(default=True, description="Multiply by half-life time decay")
    snippet_length: Optional[int] = Field(
        default=None,
        ge=1,
        description="Snippet size in characters (engine default when omitted)",
    )
