"""
Abstract base classes for the collaborators hybrid search depends on.

The engine only talks to these interfaces, so implementations are swappable:
- VectorIndex: nearest-neighbour search over chunk embeddings
- MetadataStore: chunk rows, metadata predicates, batch lookup by id
- EmbeddingProvider: text → vector (used by the indexer, not by ranking)

Failures raised by implementations propagate through the engine unchanged.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import ChunkFilter, ChunkRecord, VectorHit


class VectorIndex(ABC):
    """Black-box nearest-neighbour index keyed by chunk_id"""

    @abstractmethod
    async def add_vectors(
        self,
        vectors: List[List[float]],
        ids: List[str],
        metadata: Optional[List[dict]] = None,
    ) -> None:
        """
        Add (or replace) vectors for the given chunk ids.

        Args:
            vectors: Embeddings, one per id
            ids: Chunk ids (same ids as in the keyword index)
            metadata: Optional per-vector metadata, same length as ids
        """
        pass

    @abstractmethod
    async def search(self, query_vector: List[float], k: int = 10) -> List[VectorHit]:
        """
        Return up to k nearest neighbours, sorted by similarity (descending).
        """
        pass

    async def remove(self, ids: List[str]) -> int:
        """Optional: delete vectors by id, returns number removed"""
        raise NotImplementedError(f"{type(self).__name__} does not support removal")

    async def close(self) -> None:
        """Optional cleanup (close pools, free memory, etc.)"""
        pass


class MetadataStore(ABC):
    """Relational chunk metadata (patient, artifact type, timestamps, full text)"""

    @abstractmethod
    async def insert_chunks(self, chunks: List[ChunkRecord]) -> None:
        """Insert or update chunk rows (upsert by chunk_id)"""
        pass

    @abstractmethod
    async def filter_chunks(self, criteria: ChunkFilter) -> List[str]:
        """
        Chunk ids matching every given criterion (AND-combined).

        Date range is inclusive at both ends; artifact_types is a membership test.
        """
        pass

    @abstractmethod
    async def get_chunks_by_ids(self, chunk_ids: List[str]) -> List[ChunkRecord]:
        """Fetch rows for the given ids; unknown ids are silently absent"""
        pass

    async def delete_chunks(self, chunk_ids: List[str]) -> int:
        """Optional: delete rows by id, returns number removed"""
        raise NotImplementedError(f"{type(self).__name__} does not support deletion")

    async def close(self) -> None:
        """Optional cleanup"""
        pass


class EmbeddingProvider(ABC):
    """Text embedding model"""

    dimension: int

    @abstractmethod
    async def generate_embedding(self, text: str) -> List[float]:
        pass

    @abstractmethod
    async def generate_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Embeddings in input order"""
        pass

    def get_model_info(self) -> dict:
        """
        Get information about the embedding model.

        Returns:
            Dict with keys: name, type, dimension
        """
        return {"name": type(self).__name__, "type": "custom", "dimension": getattr(self, "dimension", None)}
