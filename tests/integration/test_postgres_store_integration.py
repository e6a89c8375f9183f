"""
Integration tests for PostgresChunkStore and the engine on top of it.

Runs against a real PostgreSQL + pgvector database (see conftest.py).
"""

from datetime import datetime, timezone

import pytest
from chart_search.hybrid.engine import HybridSearchEngine
from chart_search.models import ChunkFilter

from factories import make_document, make_record


@pytest.mark.asyncio
class TestPostgresChunkStore:
    """Schema, upserts and filters on a live database"""

    async def test_schema_created(self, postgres_store):
        async with postgres_store.pool.acquire() as conn:
            tables = await conn.fetch("""
                SELECT table_name FROM information_schema.tables
                WHERE table_name IN ('chunk_metadata', 'chunk_embeddings')
            """)
            index_count = await conn.fetchval("""
                SELECT COUNT(*) FROM pg_indexes
                WHERE indexname = 'chunk_embeddings_embedding_idx'
            """)

        assert {row["table_name"] for row in tables} == {"chunk_metadata", "chunk_embeddings"}
        assert index_count == 1

    async def test_vector_search_order(self, postgres_store):
        await postgres_store.add_vectors(
            [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.7, 0.7, 0.0]],
            ["x", "y", "xy"],
            [{"patient_id": "p1"}, {}, {}],
        )

        hits = await postgres_store.search([1.0, 0.0, 0.0], k=3)

        assert [h.id for h in hits] == ["x", "xy", "y"]
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)
        assert hits[0].metadata == {"patient_id": "p1"}

    async def test_vector_upsert(self, postgres_store):
        await postgres_store.add_vectors([[1.0, 0.0, 0.0]], ["x"])
        await postgres_store.add_vectors([[0.0, 1.0, 0.0]], ["x"])

        hits = await postgres_store.search([0.0, 1.0, 0.0], k=5)

        assert len(hits) == 1
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)

    async def test_metadata_roundtrip_and_filters(self, postgres_store):
        await postgres_store.insert_chunks([
            make_record("n1", "note", patient_id="p1", occurred_at="2024-01-15T09:00:00Z"),
            make_record("l1", "lab", patient_id="p1", artifact_type="lab_result",
                        occurred_at="2024-03-01T00:00:00Z"),
            make_record("x1", "other", patient_id="p2", occurred_at="2024-03-01T00:00:00Z"),
        ])

        assert await postgres_store.count_chunks() == 3
        assert await postgres_store.filter_chunks(ChunkFilter(patient_id="p1")) == ["l1", "n1"]
        assert await postgres_store.filter_chunks(ChunkFilter(
            patient_id="p1",
            date_to=datetime(2024, 2, 1, tzinfo=timezone.utc),
        )) == ["n1"]
        assert await postgres_store.filter_chunks(ChunkFilter(
            patient_id="p1", artifact_types=["lab_result"],
        )) == ["l1"]

        records = await postgres_store.get_chunks_by_ids(["l1"])
        assert records[0].text == "lab"
        assert records[0].occurred_at == datetime(2024, 3, 1, tzinfo=timezone.utc)

    async def test_delete(self, postgres_store):
        await postgres_store.insert_chunks([make_record("n1", "note")])
        await postgres_store.add_vectors([[1.0, 0.0, 0.0]], ["n1"])

        assert await postgres_store.delete_chunks(["n1", "missing"]) == 1
        assert await postgres_store.remove(["n1"]) == 1
        assert await postgres_store.count_chunks() == 0


@pytest.mark.asyncio
class TestHybridSearchOnPostgres:

    async def test_end_to_end(self, postgres_store):
        engine = HybridSearchEngine(postgres_store, postgres_store)
        result = await engine.add_documents([
            make_document("doc1", "Patient diagnosed with Type 2 Diabetes mellitus", [0.8, 0.6, 0.0]),
            make_document("doc2", "Blood pressure 140/90 hypertension", [0.0, 0.0, 1.0]),
            make_document("doc3", "Metformin 500mg twice daily", [0.9, 0.1, 0.0]),
        ])
        assert result.ok

        keyword = await engine.search(
            "diabetes medication", [1.0, 0.0, 0.0], {"k": 3, "alpha": 0.0, "recency_boost": False},
        )
        semantic = await engine.search(
            "diabetes medication", [1.0, 0.0, 0.0],
            {"k": 3, "alpha": 1.0, "filters": {"patient_id": "patient-1"}},
        )

        assert keyword[0].chunk_id == "doc1"
        assert semantic[0].chunk_id == "doc3"
        assert semantic[0].metadata.patient_id == "patient-1"
