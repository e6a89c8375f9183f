"""
Document indexer: embedding generation in front of the hybrid search engine.

Chunk rows come in without embeddings; the indexer embeds them (in parallel,
through the embedding provider) and hands complete Documents to the engine's
dual-write. Query embedding for search goes through the same provider.
"""

import logging
import time
from typing import List, Optional, Sequence, Union

from .hybrid.engine import HybridSearchEngine, coerce_options
from .models import BatchAddResult, ChunkRecord, Document, SearchOptions, SearchResult
from .stores.base import EmbeddingProvider

logger = logging.getLogger(__name__)


class DocumentIndexer:
    """Embeds chunks and queries for a HybridSearchEngine"""

    def __init__(self, engine: HybridSearchEngine, embedding_provider: EmbeddingProvider,
                 batch_size: int = 100):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.engine = engine
        self.embedding_provider = embedding_provider
        self.batch_size = batch_size

    async def index_chunks(self, chunks: Sequence[ChunkRecord]) -> BatchAddResult:
        """
        Embed and index chunk rows in batches of batch_size.

        A batch whose embedding call fails is reported as failed in full;
        other batches are still indexed.
        """
        result = BatchAddResult()
        if not chunks:
            return result

        start_time = time.perf_counter()
        logger.info(f"Indexing {len(chunks)} chunks (batch size {self.batch_size})")

        for offset in range(0, len(chunks), self.batch_size):
            batch = list(chunks[offset:offset + self.batch_size])
            documents = await self._embed_batch(batch, result)
            if not documents:
                continue

            batch_result = await self.engine.add_documents(documents)
            result.indexed.extend(batch_result.indexed)
            result.failed.extend(batch_result.failed)

        duration = time.perf_counter() - start_time
        logger.info(
            f"Indexed {len(result.indexed)} chunks in {duration:.1f}s "
            f"({len(result.failed)} failed)"
        )
        return result

    async def _embed_batch(self, batch: List[ChunkRecord], result: BatchAddResult) -> List[Document]:
        try:
            embeddings = await self.embedding_provider.generate_batch_embeddings([c.text for c in batch])
        except Exception as e:
            logger.error(f"Embedding generation failed for {len(batch)} chunks: {e}")
            for chunk in batch:
                result.add_failure(chunk.chunk_id, f"embedding failed: {e}")
            return []

        if len(embeddings) != len(batch):
            raise ValueError(f"Embedding provider returned {len(embeddings)} vectors for {len(batch)} texts")

        return [
            Document(chunk_id=chunk.chunk_id, text=chunk.text, embedding=embedding, metadata=chunk.metadata)
            for chunk, embedding in zip(batch, embeddings)
        ]

    async def search(self, query: str, options: Union[SearchOptions, dict]) -> List[SearchResult]:
        """
        Embed the query and run hybrid search.

        Pure keyword queries (alpha == 0) and blank queries skip the embedding call.
        """
        options = coerce_options(options)

        query_embedding: Optional[List[float]] = None
        if options.alpha > 0 and query.strip():
            query_embedding = await self.embedding_provider.generate_embedding(query)

        return await self.engine.search(query, query_embedding, options)
