"""
Factory to create vector index + metadata store pairs based on configuration.
"""

import logging
import os
from typing import Optional, Tuple

from .base import MetadataStore, VectorIndex
from .memory import InMemoryMetadataStore, InMemoryVectorIndex
from .postgres import PostgresChunkStore

logger = logging.getLogger(__name__)

VALID_BACKENDS = ("memory", "postgres")

StorePair = Tuple[VectorIndex, MetadataStore]


class StoreFactory:
    """Factory to create search collaborators based on configuration."""

    _instance: Optional[StorePair] = None  # Singleton cache

    @classmethod
    async def create(
        cls,
        backend: Optional[str] = None,
        database_url: Optional[str] = None,
        dimension: int = 768,
        force_reload: bool = False,
    ) -> StorePair:
        """
        Create (vector_index, metadata_store) for the configured backend.

        Config (env vars, used when arguments are omitted):
            SEARCH_BACKEND: "memory" | "postgres" (default: memory)
            DATABASE_URL: PostgreSQL connection string (postgres backend only)

        Supported backends:
            - memory: numpy exact cosine search + dict metadata (dev/tests)
            - postgres: pgvector HNSW search + chunk_metadata table; one
              PostgresChunkStore plays both roles

        Args:
            backend: Backend name (overrides SEARCH_BACKEND)
            database_url: Connection string (overrides DATABASE_URL)
            dimension: Embedding dimension
            force_reload: If True, recreate stores even if cached

        Returns:
            Tuple of (vector_index, metadata_store)
        """
        if cls._instance is not None and not force_reload:
            logger.info("Returning cached search stores")
            return cls._instance

        backend = (backend or os.getenv("SEARCH_BACKEND", "memory")).lower()

        try:
            if backend == "memory":
                logger.info(f"Creating in-memory stores (dim={dimension})")
                cls._instance = (InMemoryVectorIndex(dimension), InMemoryMetadataStore())

            elif backend == "postgres":
                database_url = database_url or os.getenv("DATABASE_URL")
                if not database_url:
                    raise ValueError("DATABASE_URL environment variable is required for postgres backend")

                logger.info(f"Creating PostgreSQL stores (dim={dimension})")
                store = PostgresChunkStore(database_url, dimension=dimension)
                await store.connect()
                await store.init_schema()
                cls._instance = (store, store)

            else:
                raise ValueError(
                    f"Unknown search backend: {backend}. "
                    f"Valid options: {', '.join(VALID_BACKENDS)}"
                )

        except Exception as e:
            logger.error(f"Failed to create search stores ({backend}): {e}")
            raise

        return cls._instance

    @classmethod
    async def cleanup(cls):
        """Close cached stores."""
        if cls._instance is not None:
            logger.info("Cleaning up search stores")
            vector_index, metadata_store = cls._instance
            await vector_index.close()
            if metadata_store is not vector_index:
                await metadata_store.close()
            cls._instance = None
