"""
In-memory BM25 keyword index with global IDF statistics.

Formula:
    idf(term)        = ln((N - df + 0.5) / (df + 0.5) + 1)
    score(term, doc) = idf × (tf × (k1 + 1)) / (tf + k1 × (1 - b + b × dl/avgdl))

Where:
    N     = total indexed documents
    df    = number of documents containing the term at least once
    tf    = term frequency in document
    dl    = document length (tokens)
    avgdl = running average document length over the whole index
    k1    = 1.5 (term frequency saturation)
    b     = 0.75 (length normalization strength)

Consistency model:
- Single writer: insert / insert_batch / remove / clear are serialized by a lock
- Each mutation is applied under the lock, so readers (search, score, stats)
  observe either the state before or after it, never a partial update
- avgdl is derived from the exact sum of document lengths, so batch and
  one-at-a-time insertion yield the same average
"""

import json
import logging
import math
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..models import BM25Document, IndexStats, ScoredChunk
from .tokenizer import term_frequencies, tokenize

logger = logging.getLogger(__name__)

INDEX_FORMAT_VERSION = 1


class BM25Index:
    """
    Keyword index over chunk texts.

    Owned by exactly one HybridSearchEngine; nothing else mutates it.
    """

    k1 = 1.5
    b = 0.75

    def __init__(self, stemming: bool = False):
        """
        Args:
            stemming: Apply Snowball stemming to documents and queries
        """
        self.stemming = stemming
        self._documents: Dict[str, BM25Document] = {}
        self._document_frequency: Dict[str, int] = {}
        self._total_length = 0
        self._average_doc_length = 0.0
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, chunk_id: str) -> bool:
        return chunk_id in self._documents

    @property
    def total_documents(self) -> int:
        return len(self._documents)

    @property
    def average_document_length(self) -> float:
        return self._average_doc_length

    def document_frequency(self, term: str) -> int:
        return self._document_frequency.get(term, 0)

    def get_document(self, chunk_id: str) -> Optional[BM25Document]:
        return self._documents.get(chunk_id)

    def tokenize(self, text: str) -> List[str]:
        """Tokenize with the same settings used at insertion time"""
        return tokenize(text, stem_tokens=self.stemming)

    def _build_document(self, chunk_id: str, text: str) -> BM25Document:
        tokens = self.tokenize(text)
        return BM25Document(
            chunk_id=chunk_id,
            tokens=tokens,
            length=len(tokens),
            term_freqs=term_frequencies(tokens),
        )

    def _add(self, doc: BM25Document) -> None:
        # Caller holds the lock; re-inserting an id replaces the old record
        if doc.chunk_id in self._documents:
            self._discard(doc.chunk_id)

        self._documents[doc.chunk_id] = doc
        for term in doc.term_freqs:
            self._document_frequency[term] = self._document_frequency.get(term, 0) + 1
        self._total_length += doc.length

    def _discard(self, chunk_id: str) -> bool:
        doc = self._documents.pop(chunk_id, None)
        if doc is None:
            return False

        for term in doc.term_freqs:
            remaining = self._document_frequency.get(term, 0) - 1
            if remaining > 0:
                self._document_frequency[term] = remaining
            else:
                self._document_frequency.pop(term, None)
        self._total_length -= doc.length
        return True

    def _recompute_average(self) -> None:
        n = len(self._documents)
        self._average_doc_length = self._total_length / n if n else 0.0

    def insert(self, chunk_id: str, text: str) -> BM25Document:
        """
        Index a single chunk.

        Args:
            chunk_id: Unique chunk identifier (same id as in the vector index)
            text: Chunk text

        Returns:
            The stored BM25 document record
        """
        doc = self._build_document(chunk_id, text)
        with self._lock:
            self._add(doc)
            self._recompute_average()
        return doc

    def insert_batch(self, documents: Iterable[Tuple[str, str]]) -> List[BM25Document]:
        """
        Index several chunks, recomputing the average length once at the end.

        Tokenization happens before the lock is taken; all index mutations for
        the batch are applied together so readers never see half a batch.

        Args:
            documents: (chunk_id, text) pairs

        Returns:
            Stored BM25 document records, in input order
        """
        built = [self._build_document(chunk_id, text) for chunk_id, text in documents]
        if not built:
            return []

        with self._lock:
            for doc in built:
                self._add(doc)
            self._recompute_average()

        logger.debug(
            f"BM25 batch insert: {len(built)} docs, total={len(self._documents)}, "
            f"avgdl={self._average_doc_length:.2f}"
        )
        return built

    def remove(self, chunk_id: str) -> bool:
        """
        Remove a chunk (first half of a delete + reinsert update).

        Returns:
            True if the chunk was indexed
        """
        with self._lock:
            removed = self._discard(chunk_id)
            if removed:
                self._recompute_average()
        return removed

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()
            self._document_frequency.clear()
            self._total_length = 0
            self._average_doc_length = 0.0

    def idf(self, term: str) -> float:
        n = len(self._documents)
        df = self._document_frequency.get(term, 0)
        return math.log((n - df + 0.5) / (df + 0.5) + 1)

    def _score_document(self, query_tokens: List[str], doc: BM25Document) -> float:
        if self._average_doc_length > 0:
            length_ratio = doc.length / self._average_doc_length
        else:
            length_ratio = 1.0

        score = 0.0
        for term in query_tokens:
            tf = doc.term_freqs.get(term, 0)
            if tf == 0:
                continue

            numerator = tf * (self.k1 + 1)
            denominator = tf + self.k1 * (1 - self.b + self.b * length_ratio)
            score += self.idf(term) * (numerator / denominator)

        return score

    def score(self, query_tokens: List[str], chunk_id: str) -> float:
        """
        BM25 relevance of one indexed chunk for already-tokenized query terms.

        Returns:
            Score (0.0 for unknown chunks or no overlapping terms)
        """
        with self._lock:
            doc = self._documents.get(chunk_id)
            if doc is None:
                return 0.0
            return self._score_document(query_tokens, doc)

    def search(
        self,
        query: str,
        candidate_ids: Optional[Iterable[str]] = None,
        k: int = 10,
    ) -> List[ScoredChunk]:
        """
        Rank indexed chunks against a free-text query.

        Args:
            query: Raw query text (tokenized with the index settings)
            candidate_ids: Restrict scoring to these ids (None = all documents)
            k: Maximum number of results

        Returns:
            Non-zero hits sorted by score descending. Ties keep index
            iteration order (Python's sort is stable).
        """
        query_tokens = self.tokenize(query)
        if not query_tokens:
            return []

        with self._lock:
            if candidate_ids is None:
                documents = list(self._documents.values())
            else:
                allowed = set(candidate_ids)
                documents = [doc for chunk_id, doc in self._documents.items() if chunk_id in allowed]

            hits = []
            for doc in documents:
                score = self._score_document(query_tokens, doc)
                if score > 0:
                    hits.append(ScoredChunk(chunk_id=doc.chunk_id, score=score))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:k]

    def stats(self) -> IndexStats:
        with self._lock:
            return IndexStats(
                total_documents=len(self._documents),
                total_terms=len(self._document_frequency),
                average_doc_length=self._average_doc_length,
            )

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "version": INDEX_FORMAT_VERSION,
                "stemming": self.stemming,
                "documents": [
                    {
                        "chunk_id": doc.chunk_id,
                        "tokens": doc.tokens,
                        "length": doc.length,
                        "term_freqs": doc.term_freqs,
                    }
                    for doc in self._documents.values()
                ],
                "document_frequency": dict(self._document_frequency),
                "total_documents": len(self._documents),
                "average_doc_length": self._average_doc_length,
            }

    @classmethod
    def from_dict(cls, data: dict) -> "BM25Index":
        version = data.get("version")
        if version != INDEX_FORMAT_VERSION:
            raise ValueError(f"Unsupported BM25 index format version: {version}")

        index = cls(stemming=data.get("stemming", False))
        for raw in data["documents"]:
            doc = BM25Document(
                chunk_id=raw["chunk_id"],
                tokens=list(raw["tokens"]),
                length=int(raw["length"]),
                term_freqs={term: int(tf) for term, tf in raw["term_freqs"].items()},
            )
            index._add(doc)
        index._recompute_average()

        # Document frequencies are rebuilt from the records; a mismatch means a corrupt file
        if index._document_frequency != {t: int(c) for t, c in data["document_frequency"].items()}:
            raise ValueError("BM25 index file is inconsistent: document frequencies do not match documents")

        return index

    def save(self, path: Union[str, Path]) -> Path:
        """Write a JSON snapshot of the index (parent directories are created)"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        logger.info(
            f"Saved BM25 index to {path}: {data['total_documents']} docs, "
            f"{len(data['document_frequency'])} terms"
        )
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "BM25Index":
        """Read a snapshot written by save()"""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"BM25 index file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        index = cls.from_dict(data)
        logger.info(
            f"Loaded BM25 index from {path}: {index.total_documents} docs, "
            f"avgdl={index.average_document_length:.2f}"
        )
        return index
