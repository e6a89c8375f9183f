"""
In-memory collaborator implementations.

- InMemoryVectorIndex: exact cosine search with numpy (brute force, like a flat
  inner-product index over L2-normalized vectors)
- InMemoryMetadataStore: dict-backed chunk rows with the same filter semantics
  as the PostgreSQL store

Used for development, tests and small single-process deployments.
"""

import logging
from typing import Dict, List, Optional

import numpy as np

from ..timestamps import parse_timestamp
from ..models import ChunkFilter, ChunkRecord, VectorHit
from .base import MetadataStore, VectorIndex

logger = logging.getLogger(__name__)


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


class InMemoryVectorIndex(VectorIndex):
    """Exact cosine-similarity search over normalized vectors"""

    def __init__(self, dimension: int):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension
        self._vectors: Dict[str, np.ndarray] = {}
        self._metadata: Dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    async def add_vectors(
        self,
        vectors: List[List[float]],
        ids: List[str],
        metadata: Optional[List[dict]] = None,
    ) -> None:
        metadata = metadata or []
        if not vectors:
            raise ValueError("Cannot add empty vectors list")
        if len(vectors) != len(ids):
            raise ValueError(f"Vectors and IDs length mismatch: {len(vectors)} vs {len(ids)}")
        if metadata and len(metadata) != len(ids):
            raise ValueError(f"Metadata and IDs length mismatch: {len(metadata)} vs {len(ids)}")

        prepared = []
        for vector in vectors:
            array = np.asarray(vector, dtype=np.float32)
            if array.shape != (self.dimension,):
                raise ValueError(
                    f"Vector dimension mismatch: expected {self.dimension}, got {array.shape[-1] if array.ndim else 0}"
                )
            prepared.append(_normalize(array))

        for i, chunk_id in enumerate(ids):
            self._vectors[chunk_id] = prepared[i]
            if metadata:
                self._metadata[chunk_id] = metadata[i]

        logger.debug(f"Added {len(ids)} vectors (total {len(self._vectors)})")

    async def search(self, query_vector: List[float], k: int = 10) -> List[VectorHit]:
        if not self._vectors:
            logger.warning("Vector index is empty, returning no results")
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape != (self.dimension,):
            raise ValueError(
                f"Query vector dimension mismatch: expected {self.dimension}, got {query.shape[-1] if query.ndim else 0}"
            )
        query = _normalize(query)

        ids = list(self._vectors.keys())
        matrix = np.stack([self._vectors[chunk_id] for chunk_id in ids])
        similarities = matrix @ query

        top_k = min(k, len(ids))
        # Stable sort keeps insertion order for equal similarities
        order = np.argsort(-similarities, kind="stable")[:top_k]

        return [
            VectorHit(
                id=ids[idx],
                score=float(similarities[idx]),
                metadata=self._metadata.get(ids[idx]),
            )
            for idx in order
        ]

    async def remove(self, ids: List[str]) -> int:
        removed = 0
        for chunk_id in ids:
            if self._vectors.pop(chunk_id, None) is not None:
                removed += 1
            self._metadata.pop(chunk_id, None)
        return removed

    def reset(self) -> None:
        self._vectors.clear()
        self._metadata.clear()


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed metadata store (insertion order preserved)"""

    def __init__(self):
        self._chunks: Dict[str, ChunkRecord] = {}

    def __len__(self) -> int:
        return len(self._chunks)

    async def insert_chunks(self, chunks: List[ChunkRecord]) -> None:
        for chunk in chunks:
            self._chunks[chunk.chunk_id] = chunk

    async def filter_chunks(self, criteria: ChunkFilter) -> List[str]:
        types = set(criteria.artifact_types) if criteria.artifact_types else None
        date_from = parse_timestamp(criteria.date_from)
        date_to = parse_timestamp(criteria.date_to)

        matches = []
        for chunk in self._chunks.values():
            if criteria.patient_id is not None and chunk.patient_id != criteria.patient_id:
                continue
            if types is not None and chunk.artifact_type not in types:
                continue
            if date_from is not None or date_to is not None:
                occurred_at = parse_timestamp(chunk.occurred_at)
                if occurred_at is None:
                    # A date-restricted query cannot vouch for an undated record
                    continue
                if date_from is not None and occurred_at < date_from:
                    continue
                if date_to is not None and occurred_at > date_to:
                    continue
            matches.append(chunk.chunk_id)

        if criteria.offset:
            matches = matches[criteria.offset:]
        if criteria.limit:
            matches = matches[:criteria.limit]
        return matches

    async def get_chunks_by_ids(self, chunk_ids: List[str]) -> List[ChunkRecord]:
        return [self._chunks[chunk_id] for chunk_id in chunk_ids if chunk_id in self._chunks]

    async def delete_chunks(self, chunk_ids: List[str]) -> int:
        removed = 0
        for chunk_id in chunk_ids:
            if self._chunks.pop(chunk_id, None) is not None:
                removed += 1
        return removed
