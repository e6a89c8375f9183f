"""
Search collaborators: vector index, metadata store, embedding provider.
"""

from .base import EmbeddingProvider, MetadataStore, VectorIndex
from .factory import StoreFactory
from .memory import InMemoryMetadataStore, InMemoryVectorIndex
from .postgres import PostgresChunkStore

__all__ = [
    "EmbeddingProvider",
    "MetadataStore",
    "VectorIndex",
    "StoreFactory",
    "InMemoryMetadataStore",
    "InMemoryVectorIndex",
    "PostgresChunkStore",
]
