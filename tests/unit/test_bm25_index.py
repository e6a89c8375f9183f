"""
Unit tests for the BM25 keyword index (global IDF, running average length).
"""

import json
import math
import threading

import pytest
from chart_search.bm25.index import BM25Index


def _words(n: int, prefix: str) -> str:
    """n distinct non-stopword tokens"""
    return " ".join(f"{prefix}{i}x" for i in range(n))


@pytest.fixture
def clinical_index():
    index = BM25Index()
    index.insert("doc1", "Patient diagnosed with Type 2 Diabetes mellitus")
    index.insert("doc2", "Blood pressure 140/90 hypertension")
    index.insert("doc3", "Metformin 500mg twice daily")
    return index


class TestInsert:
    """Index bookkeeping on insertion"""

    def test_document_record(self, clinical_index):
        doc = clinical_index.get_document("doc1")
        assert doc.tokens == ["patient", "diagnosed", "type", "diabetes", "mellitus"]
        assert doc.length == 5
        assert doc.term_freqs["diabetes"] == 1

    def test_document_frequency_counts_documents_not_occurrences(self):
        index = BM25Index()
        index.insert("a", "insulin insulin insulin")
        index.insert("b", "insulin glargine")
        assert index.document_frequency("insulin") == 2
        assert index.document_frequency("glargine") == 1
        assert index.document_frequency("missing") == 0

    def test_totals(self, clinical_index):
        assert len(clinical_index) == 3
        assert clinical_index.total_documents == 3
        assert "doc2" in clinical_index
        assert clinical_index.average_document_length == pytest.approx((5 + 5 + 4) / 3)

    def test_reinsert_replaces(self):
        """Same chunk id twice → one document, stats of the latest text"""
        index = BM25Index()
        index.insert("a", "insulin glargine")
        index.insert("a", "metformin")

        assert len(index) == 1
        assert index.document_frequency("insulin") == 0
        assert index.document_frequency("metformin") == 1
        assert index.average_document_length == 1.0

    def test_empty_text_is_indexed_with_zero_length(self):
        index = BM25Index()
        index.insert("empty", "")
        index.insert("full", "insulin glargine")
        assert len(index) == 2
        assert index.average_document_length == 1.0


class TestBatchInsert:
    """Batch insertion must match one-at-a-time arithmetic"""

    def test_average_matches_incremental(self):
        docs = [("d10", _words(10, "a")), ("d20", _words(20, "b")), ("d30", _words(30, "c"))]

        incremental = BM25Index()
        for chunk_id, text in docs:
            incremental.insert(chunk_id, text)

        batched = BM25Index()
        batched.insert_batch(docs)

        assert batched.average_document_length == pytest.approx(incremental.average_document_length)
        assert batched.average_document_length == pytest.approx(20.0)

    def test_batch_after_existing_documents(self):
        index = BM25Index()
        index.insert("d10", _words(10, "a"))
        index.insert_batch([("d20", _words(20, "b")), ("d30", _words(30, "c"))])
        assert index.average_document_length == pytest.approx(20.0)
        assert index.total_documents == 3

    def test_empty_batch(self):
        index = BM25Index()
        assert index.insert_batch([]) == []
        assert index.average_document_length == 0.0


class TestScoring:
    """BM25 formula"""

    def test_idf_formula(self, clinical_index):
        # N=3, df=1 → ln((3 - 1 + 0.5) / (1 + 0.5) + 1)
        assert clinical_index.idf("diabetes") == pytest.approx(math.log(2.5 / 1.5 + 1))

    def test_idf_unknown_term_is_positive(self, clinical_index):
        assert clinical_index.idf("unknown") > 0

    def test_score_single_term(self, clinical_index):
        avgdl = 14 / 3
        tf, dl = 1, 5
        expected = math.log(2.5 / 1.5 + 1) * (tf * 2.5) / (tf + 1.5 * (0.25 + 0.75 * dl / avgdl))
        assert clinical_index.score(["diabetes"], "doc1") == pytest.approx(expected)

    def test_score_unknown_chunk(self, clinical_index):
        assert clinical_index.score(["diabetes"], "nope") == 0.0

    def test_monotonic_in_term_frequency(self):
        """More occurrences of a query term (same length) never lowers the score"""
        index = BM25Index()
        index.insert("one", "insulin alpha beta gamma")
        index.insert("two", "insulin insulin beta gamma")
        index.insert("three", "insulin insulin insulin gamma")
        index.insert("other", "metformin daily")

        scores = [index.score(["insulin"], cid) for cid in ("one", "two", "three")]
        assert scores[0] < scores[1] < scores[2]


class TestSearch:

    def test_search_ranks_matches(self, clinical_index):
        results = clinical_index.search("diabetes medication")
        assert [r.chunk_id for r in results] == ["doc1"]
        assert results[0].score > 0

    def test_zero_score_results_dropped(self, clinical_index):
        assert clinical_index.search("aspirin") == []

    def test_empty_query(self, clinical_index):
        assert clinical_index.search("the and of") == []

    def test_candidate_restriction(self, clinical_index):
        results = clinical_index.search("diabetes", candidate_ids=["doc2", "doc3"])
        assert results == []

        results = clinical_index.search("diabetes", candidate_ids=["doc1"])
        assert [r.chunk_id for r in results] == ["doc1"]

    def test_k_limits_results(self):
        index = BM25Index()
        for i in range(5):
            index.insert(f"d{i}", f"insulin note{i}")
        assert len(index.search("insulin", k=2)) == 2

    def test_ties_keep_insertion_order(self):
        index = BM25Index()
        index.insert("first", "insulin glargine")
        index.insert("second", "insulin glargine")
        index.insert("third", "insulin glargine")

        results = index.search("insulin")
        assert [r.chunk_id for r in results] == ["first", "second", "third"]

    def test_empty_index(self):
        assert BM25Index().search("insulin") == []

    def test_stemmed_index_matches_inflections(self):
        index = BM25Index(stemming=True)
        index.insert("a", "New medications started")
        assert [r.chunk_id for r in index.search("medication")] == ["a"]


class TestRemoveAndClear:

    def test_remove_updates_statistics(self, clinical_index):
        assert clinical_index.remove("doc1") is True
        assert "doc1" not in clinical_index
        assert clinical_index.document_frequency("diabetes") == 0
        assert clinical_index.average_document_length == pytest.approx(4.5)
        assert clinical_index.search("diabetes") == []

    def test_remove_unknown(self, clinical_index):
        assert clinical_index.remove("nope") is False
        assert len(clinical_index) == 3

    def test_clear(self, clinical_index):
        clinical_index.clear()
        stats = clinical_index.stats()
        assert stats.total_documents == 0
        assert stats.total_terms == 0
        assert stats.average_doc_length == 0.0


class TestConcurrentAccess:
    """Readers on other threads see whole batches only"""

    def test_readers_never_see_half_a_batch(self):
        index = BM25Index()
        torn = []

        def writer():
            # Every batch adds one 10-token and one 30-token chunk: average stays 20
            for n in range(200):
                index.insert_batch([
                    (f"short{n}", "glucose " + _words(9, f"s{n}p")),
                    (f"long{n}", "glucose " + _words(29, f"l{n}p")),
                ])

        def reader():
            while True:
                done = not writer_thread.is_alive()
                stats = index.stats()
                if stats.total_documents % 2:
                    torn.append(stats)
                elif stats.total_documents and stats.average_doc_length != pytest.approx(20.0):
                    torn.append(stats)
                if len(index.search("glucose", k=1000)) % 2:
                    torn.append("odd hit count")
                if done:
                    return

        writer_thread = threading.Thread(target=writer)
        readers = [threading.Thread(target=reader) for _ in range(3)]
        writer_thread.start()
        for thread in readers:
            thread.start()
        writer_thread.join()
        for thread in readers:
            thread.join()

        assert torn == []
        assert index.total_documents == 400
        assert index.average_document_length == pytest.approx(20.0)


class TestPersistence:
    """JSON snapshot round trip"""

    def test_save_and_load(self, clinical_index, tmp_path):
        path = clinical_index.save(tmp_path / "nested" / "index.json")
        loaded = BM25Index.load(path)

        assert loaded.stats() == clinical_index.stats()
        assert [r.chunk_id for r in loaded.search("diabetes")] == ["doc1"]
        assert loaded.score(["diabetes"], "doc1") == pytest.approx(clinical_index.score(["diabetes"], "doc1"))

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BM25Index.load(tmp_path / "missing.json")

    def test_load_rejects_unknown_version(self, clinical_index, tmp_path):
        data = clinical_index.to_dict()
        data["version"] = 99
        path = tmp_path / "index.json"
        path.write_text(json.dumps(data))

        with pytest.raises(ValueError, match="version"):
            BM25Index.load(path)

    def test_load_rejects_inconsistent_file(self, clinical_index):
        data = clinical_index.to_dict()
        data["document_frequency"]["diabetes"] = 7

        with pytest.raises(ValueError, match="inconsistent"):
            BM25Index.from_dict(data)

    def test_stemming_setting_persisted(self, tmp_path):
        index = BM25Index(stemming=True)
        index.insert("a", "medications")
        loaded = BM25Index.load(index.save(tmp_path / "index.json"))
        assert loaded.stemming is True
