"""
Hybrid search engine: BM25 keyword search + vector similarity search.

Indexing (dual write, same chunk_id everywhere):
1. Vector index   ← embedding + metadata
2. Metadata store ← chunk row (text, patient, type, timestamp)
3. BM25 index     ← tokens (only after 1 and 2 succeeded)

Query pipeline:
1. Metadata pre-filter (optional) → candidate ids; empty → return [] immediately
2. Semantic + keyword search concurrently, k × candidate_multiplier each
3. Min-max normalize both channels, alpha-weighted blend, × recency boost
4. Sort (stable), truncate to k
5. Fetch chunk rows, extract snippets
6. Return SearchResult list

Collaborator failures (vector index, metadata store) fail the whole call;
there is no degraded partial-result mode. Retry/fallback belongs to the caller.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from ..bm25.index import BM25Index
from ..errors import InvalidSearchOptions
from ..models import (
    BatchAddResult,
    ChunkRecord,
    CombinedResult,
    Document,
    FailedDocument,
    IndexStats,
    ScoredChunk,
    SearchOptions,
    SearchResult,
)
from ..stores.base import MetadataStore, VectorIndex
from .filters import MetadataPreFilter
from .fusion import combine_scores
from .recency import DEFAULT_HALF_LIFE_DAYS
from .snippets import DEFAULT_SNIPPET_LENGTH, extract_snippet

logger = logging.getLogger(__name__)


def coerce_options(options: Union[SearchOptions, dict]) -> SearchOptions:
    """Validate a dict (or pass through a model); caller errors become InvalidSearchOptions"""
    if isinstance(options, SearchOptions):
        return options
    try:
        return SearchOptions.model_validate(options)
    except ValidationError as e:
        raise InvalidSearchOptions(f"Invalid search options: {e}") from e


class HybridSearchEngine:
    """
    Owns the BM25 keyword index and coordinates it with the external
    vector index and metadata store.
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        metadata_store: MetadataStore,
        keyword_index: Optional[BM25Index] = None,
        half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
        snippet_length: int = DEFAULT_SNIPPET_LENGTH,
        candidate_multiplier: int = 3,
        semantic_overfetch: int = 2,
        require_patient_id: bool = True,
    ):
        """
        Args:
            vector_index: Nearest-neighbour index over chunk embeddings
            metadata_store: Chunk rows + metadata predicates
            keyword_index: BM25 index (a fresh empty one if omitted)
            half_life_days: Recency half-life for the time decay boost
            snippet_length: Default snippet size when options omit it
            candidate_multiplier: Each channel retrieves k × this many hits
            semantic_overfetch: Extra factor for vector search when results are
                restricted to filtered candidates (filtering happens after the
                nearest-neighbour lookup)
            require_patient_id: Reject filters without a patient_id
        """
        if candidate_multiplier < 1:
            raise ValueError(f"candidate_multiplier must be >= 1, got {candidate_multiplier}")
        if semantic_overfetch < 1:
            raise ValueError(f"semantic_overfetch must be >= 1, got {semantic_overfetch}")
        if half_life_days <= 0:
            raise ValueError(f"half_life_days must be positive, got {half_life_days}")

        self.vector_index = vector_index
        self.metadata_store = metadata_store
        self.keyword_index = keyword_index if keyword_index is not None else BM25Index()
        self.half_life_days = half_life_days
        self.snippet_length = snippet_length
        self.candidate_multiplier = candidate_multiplier
        self.semantic_overfetch = semantic_overfetch
        self.pre_filter = MetadataPreFilter(metadata_store, require_patient_id=require_patient_id)

        # Single writer for keyword index mutations issued through the engine
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_document(doc: Document) -> None:
        if not doc.chunk_id:
            raise ValueError("Document chunk_id is required")
        if doc.embedding is None or len(doc.embedding) == 0:
            raise ValueError(f"Document {doc.chunk_id} has no embedding")

    async def _write_external(self, docs: Sequence[Document]) -> None:
        await self.vector_index.add_vectors(
            [doc.embedding for doc in docs],
            [doc.chunk_id for doc in docs],
            [doc.metadata.to_dict() for doc in docs],
        )
        await self.metadata_store.insert_chunks([doc.to_record() for doc in docs])

    async def _discard_orphan_vectors(self, chunk_ids: List[str]) -> None:
        """
        Drop vectors written for documents whose metadata write failed.

        Only ids unknown to the keyword index are touched, so a failed re-index
        never removes the previous version of a chunk.
        """
        orphans = [chunk_id for chunk_id in chunk_ids if chunk_id not in self.keyword_index]
        if not orphans:
            return
        try:
            await self.vector_index.remove(orphans)
        except NotImplementedError:
            logger.warning(f"Vector index cannot remove orphaned vectors: {orphans}")
        except Exception as e:
            logger.error(f"Failed to remove orphaned vectors {orphans}: {e}")

    async def add_document(self, doc: Document) -> None:
        """
        Index one document in the vector index, metadata store and BM25 index.

        Raises:
            ValueError: Document has no chunk_id or embedding
            Exception: Any collaborator failure, unchanged
        """
        self._validate_document(doc)

        async with self._write_lock:
            try:
                await self._write_external([doc])
            except Exception as e:
                logger.error(f"Failed to add document {doc.chunk_id}: {e}")
                await self._discard_orphan_vectors([doc.chunk_id])
                raise

            self.keyword_index.insert(doc.chunk_id, doc.text)

        logger.debug(f"Indexed document {doc.chunk_id}")

    async def add_documents(self, docs: Sequence[Document]) -> BatchAddResult:
        """
        Index a batch of documents with per-document failure reporting.

        External writes are attempted as one batch first. If that fails, each
        document is retried on its own to isolate the failures (both stores
        upsert by chunk_id, so the retry is safe). Documents that made it into
        both stores are then added to the BM25 index in a single batch.
        Successfully indexed documents stay indexed; there is no rollback.

        Returns:
            BatchAddResult listing indexed chunk ids and failures
        """
        result = BatchAddResult()
        if not docs:
            return result

        logger.info(f"Adding {len(docs)} documents in batch")

        valid: List[Document] = []
        for doc in docs:
            try:
                self._validate_document(doc)
                valid.append(doc)
            except ValueError as e:
                result.failed.append(FailedDocument(chunk_id=doc.chunk_id, error=str(e)))

        async with self._write_lock:
            written: List[Document] = []
            if valid:
                try:
                    await self._write_external(valid)
                    written = list(valid)
                except Exception as batch_error:
                    logger.warning(
                        f"Batch write of {len(valid)} documents failed ({batch_error}), "
                        f"retrying one by one"
                    )
                    write_failures: List[str] = []
                    for doc in valid:
                        try:
                            await self._write_external([doc])
                            written.append(doc)
                        except Exception as e:
                            logger.error(f"Failed to add document {doc.chunk_id}: {e}")
                            result.failed.append(FailedDocument(chunk_id=doc.chunk_id, error=str(e)))
                            write_failures.append(doc.chunk_id)

                    # Invalid documents never reached a store; their ids are left alone
                    await self._discard_orphan_vectors(write_failures)

            self.keyword_index.insert_batch((doc.chunk_id, doc.text) for doc in written)

        result.indexed = [doc.chunk_id for doc in written]
        logger.info(f"Added {len(result.indexed)} documents ({len(result.failed)} failed)")
        return result

    async def remove_documents(self, chunk_ids: Iterable[str]) -> int:
        """
        Remove chunks from all three stores.

        Returns:
            Number of chunks removed from the keyword index
        """
        chunk_ids = list(chunk_ids)
        if not chunk_ids:
            return 0

        async with self._write_lock:
            await self.vector_index.remove(chunk_ids)
            await self.metadata_store.delete_chunks(chunk_ids)
            removed = sum(1 for chunk_id in chunk_ids if self.keyword_index.remove(chunk_id))

        logger.info(f"Removed {removed} documents from keyword index")
        return removed

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        query_embedding: Optional[List[float]],
        options: Union[SearchOptions, dict],
    ) -> List[SearchResult]:
        """
        Hybrid search combining keyword and semantic retrieval.

        Args:
            query: Search query text
            query_embedding: Query vector (None skips the semantic channel)
            options: k, alpha (required), filters, recency_boost, snippet_length

        Returns:
            Up to k results sorted by combined score

        Raises:
            InvalidSearchOptions: Malformed options or filters (before any index work)
            Exception: Collaborator failures, unchanged
        """
        options = coerce_options(options)
        criteria = self.pre_filter.build_criteria(options.filters) if options.filters else None

        logger.info(f"Hybrid search: {query!r} (k={options.k}, alpha={options.alpha})")
        start_time = time.perf_counter()

        try:
            # Step 1: Pre-filter by metadata
            candidate_ids: Optional[List[str]] = None
            if criteria is not None:
                candidate_ids = await self.pre_filter.filter(options.filters)
                logger.debug(f"Filtered to {len(candidate_ids)} candidates")
                if not candidate_ids:
                    logger.info("No candidates after filtering")
                    return []

            # Step 2: Both channels concurrently, with rerank headroom
            headroom = options.k * self.candidate_multiplier
            semantic_results, keyword_results = await asyncio.gather(
                self._semantic_search(query_embedding, candidate_ids, headroom),
                asyncio.to_thread(self.keyword_index.search, query, candidate_ids, headroom),
            )

            # Step 3: Fuse scores (recency needs each chunk's timestamp)
            records: Dict[str, ChunkRecord] = {}
            if options.recency_boost:
                union_ids = list(dict.fromkeys(
                    [r.chunk_id for r in semantic_results] + [r.chunk_id for r in keyword_results]
                ))
                records = await self._fetch_records(union_ids)

            combined = combine_scores(
                semantic_results,
                keyword_results,
                options.alpha,
                apply_recency=options.recency_boost,
                timestamps={chunk_id: record.occurred_at for chunk_id, record in records.items()},
                half_life_days=self.half_life_days,
            )

            # Step 4: Top k
            top_results = combined[:options.k]

            # Step 5: Snippets + metadata
            missing = [r.chunk_id for r in top_results if r.chunk_id not in records]
            if missing:
                records.update(await self._fetch_records(missing))

            snippet_length = options.snippet_length or self.snippet_length
            final_results = self._enrich(top_results, records, query, snippet_length)

        except Exception as e:
            logger.error(f"Hybrid search failed: {e}")
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Found {len(final_results)} results ({duration_ms:.0f}ms; "
            f"semantic={len(semantic_results)}, keyword={len(keyword_results)})"
        )
        return final_results

    async def _semantic_search(
        self,
        query_embedding: Optional[List[float]],
        candidate_ids: Optional[List[str]],
        k: int,
    ) -> List[ScoredChunk]:
        """Vector search, restricted to candidate ids after the lookup"""
        if query_embedding is None or len(query_embedding) == 0:
            logger.debug("No query embedding, skipping semantic search")
            return []

        fetch_k = k if candidate_ids is None else k * self.semantic_overfetch
        hits = await self.vector_index.search(query_embedding, fetch_k)

        if candidate_ids is not None:
            allowed = set(candidate_ids)
            hits = [hit for hit in hits if hit.id in allowed]

        return [ScoredChunk(chunk_id=hit.id, score=hit.score) for hit in hits[:k]]

    async def _fetch_records(self, chunk_ids: List[str]) -> Dict[str, ChunkRecord]:
        if not chunk_ids:
            return {}
        records = await self.metadata_store.get_chunks_by_ids(chunk_ids)
        return {record.chunk_id: record for record in records}

    @staticmethod
    def _enrich(
        results: List[CombinedResult],
        records: Dict[str, ChunkRecord],
        query: str,
        snippet_length: int,
    ) -> List[SearchResult]:
        final_results: List[SearchResult] = []

        for result in results:
            record = records.get(result.chunk_id)
            if record is None:
                logger.warning(f"Chunk not found in metadata store: {result.chunk_id}")
                continue

            final_results.append(SearchResult(
                chunk_id=result.chunk_id,
                score=result.score,
                semantic_score=result.semantic_score,
                keyword_score=result.keyword_score,
                recency_boost=result.recency_boost,
                snippet=extract_snippet(record.text, query, snippet_length),
                metadata=record.metadata,
            ))

        return final_results

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    def get_stats(self) -> IndexStats:
        return self.keyword_index.stats()

    def clear(self) -> None:
        """Reset keyword index state (external stores are left untouched)"""
        self.keyword_index.clear()
        logger.info("Keyword index cleared")

    def save_index(self, path: Union[str, Path]) -> Path:
        return self.keyword_index.save(path)

    async def load_index(self, path: Union[str, Path]) -> IndexStats:
        """Replace the keyword index with a snapshot from disk, after in-flight writes finish"""
        async with self._write_lock:
            self.keyword_index = BM25Index.load(path)
        logger.info(f"Keyword index loaded from {path} ({len(self.keyword_index)} documents)")
        return self.keyword_index.stats()
