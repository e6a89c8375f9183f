"""
Unit tests for DocumentIndexer (embedding in front of the engine).
"""

from typing import List
from unittest.mock import AsyncMock

import pytest
from chart_search.indexer import DocumentIndexer
from chart_search.stores.base import EmbeddingProvider

from factories import make_record

pytestmark = pytest.mark.unit


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic 3-d vectors: medication, vitals, other"""

    def __init__(self, fail_on: str = None):
        self.fail_on = fail_on
        self.batches: List[List[str]] = []
        self.queries: List[str] = []

    def _vector(self, text: str) -> List[float]:
        text = text.lower()
        if "metformin" in text or "medication" in text:
            return [1.0, 0.0, 0.0]
        if "pressure" in text:
            return [0.0, 1.0, 0.0]
        return [0.0, 0.0, 1.0]

    async def generate_embedding(self, text: str) -> List[float]:
        self.queries.append(text)
        return self._vector(text)

    async def generate_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        self.batches.append(list(texts))
        if self.fail_on and any(self.fail_on in text for text in texts):
            raise RuntimeError("quota exceeded")
        return [self._vector(text) for text in texts]

    def get_model_info(self) -> dict:
        return {"name": "keyword-test", "dimension": 3}


CHUNKS = [
    make_record("c1", "Metformin 500mg twice daily"),
    make_record("c2", "Blood pressure 140/90"),
    make_record("c3", "Follow up in three months"),
]


class TestIndexChunks:

    @pytest.mark.asyncio
    async def test_embeds_in_batches(self, engine):
        provider = KeywordEmbeddingProvider()
        indexer = DocumentIndexer(engine, provider, batch_size=2)

        result = await indexer.index_chunks(CHUNKS)

        assert result.indexed == ["c1", "c2", "c3"]
        assert result.ok
        assert [len(batch) for batch in provider.batches] == [2, 1]
        assert engine.get_stats().total_documents == 3

    @pytest.mark.asyncio
    async def test_failed_embedding_batch_reported(self, engine):
        provider = KeywordEmbeddingProvider(fail_on="pressure")
        indexer = DocumentIndexer(engine, provider, batch_size=1)

        result = await indexer.index_chunks(CHUNKS)

        assert result.indexed == ["c1", "c3"]
        assert [f.chunk_id for f in result.failed] == ["c2"]
        assert "quota exceeded" in result.failed[0].error

    @pytest.mark.asyncio
    async def test_wrong_vector_count_raises(self, engine):
        provider = AsyncMock(spec=EmbeddingProvider)
        provider.generate_batch_embeddings.return_value = [[1.0, 0.0, 0.0]]
        indexer = DocumentIndexer(engine, provider)

        with pytest.raises(ValueError, match="returned 1 vectors for 3 texts"):
            await indexer.index_chunks(CHUNKS)

    @pytest.mark.asyncio
    async def test_metadata_carried_over(self, engine, metadata_store):
        indexer = DocumentIndexer(engine, KeywordEmbeddingProvider())
        await indexer.index_chunks([make_record("c1", "Metformin", artifact_type="medication_order")])

        records = await metadata_store.get_chunks_by_ids(["c1"])
        assert records[0].artifact_type == "medication_order"

    @pytest.mark.asyncio
    async def test_nothing_to_index(self, engine):
        provider = KeywordEmbeddingProvider()
        result = await DocumentIndexer(engine, provider).index_chunks([])
        assert result.indexed == []
        assert provider.batches == []

    def test_invalid_batch_size(self, engine):
        with pytest.raises(ValueError):
            DocumentIndexer(engine, KeywordEmbeddingProvider(), batch_size=0)


class TestIndexerSearch:

    @pytest.mark.asyncio
    async def test_query_embedded(self, engine):
        provider = KeywordEmbeddingProvider()
        indexer = DocumentIndexer(engine, provider)
        await indexer.index_chunks(CHUNKS)

        results = await indexer.search("current medication", {"k": 1, "alpha": 1.0})

        assert provider.queries == ["current medication"]
        assert results[0].chunk_id == "c1"

    @pytest.mark.asyncio
    async def test_pure_keyword_skips_embedding(self, engine):
        provider = KeywordEmbeddingProvider()
        indexer = DocumentIndexer(engine, provider)
        await indexer.index_chunks(CHUNKS)

        results = await indexer.search("pressure", {"k": 3, "alpha": 0.0})

        assert provider.queries == []
        assert [r.chunk_id for r in results] == ["c2"]

    @pytest.mark.asyncio
    async def test_blank_query_skips_embedding(self, engine):
        provider = KeywordEmbeddingProvider()
        indexer = DocumentIndexer(engine, provider)

        assert await indexer.search("   ", {"k": 3, "alpha": 0.5}) == []
        assert provider.queries == []
