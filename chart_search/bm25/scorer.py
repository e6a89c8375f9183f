"""
Simplified BM25 scorer without index statistics.

Used by the multi-signal retrieval scorer, which scores one candidate at a
time and has no access to the keyword index. Instead of global IDF and the
index's running average length it assumes every term is equally important and
uses a fixed average document length.

Formula (simplified):
    score(term, doc) = (tf × (k1 + 1)) / (tf + k1 × (1 - b + b × dl/avgdl))

Where:
    tf = term frequency in document
    k1 = term frequency saturation parameter (default: 1.5)
    b = length normalization parameter (default: 0.75)
    dl = document length (number of tokens)
    avgdl = assumed average document length (default: 100 tokens)

Normalized form (keyword match in [0, 1]):
    min(1, (Σ score(term, doc) / |query terms|) / 2)
"""

from typing import Dict, List


class SimplifiedBM25:
    """
    BM25 term-frequency component without IDF.

    Intentionally decoupled from BM25Index: the assumed avgdl does not follow
    the index's running average.
    """

    def __init__(self, k1: float = 1.5, b: float = 0.75, avgdl: float = 100):
        """
        Initialize BM25 scorer.

        Args:
            k1: Term frequency saturation parameter
                Higher = more weight to term frequency
                Default: 1.5

            b: Length normalization parameter
                Higher = more penalty for long documents
                Range: 0.0 - 1.0
                Default: 0.75 (standard)

            avgdl: Assumed average document length (in tokens)
                Default: 100 tokens (typical clinical note chunk)
        """
        self.k1 = k1
        self.b = b
        self.avgdl = avgdl

    def score(
        self,
        query_terms: List[str],
        doc_term_frequencies: Dict[str, int],
        token_count: int,
    ) -> float:
        """
        Compute raw simplified BM25 score for a document given query terms.

        Args:
            query_terms: Tokenized query (lowercase)
            doc_term_frequencies: Term frequency map {term: count}
            token_count: Total number of tokens in document

        Returns:
            BM25 score (higher = more relevant), each matching term adds at most k1 + 1

        Example:
            >>> scorer = SimplifiedBM25()
            >>> scorer.score(["metformin"], {"metformin": 2, "daily": 1}, token_count=100)
            1.4285714285714286
        """
        if not query_terms or not doc_term_frequencies:
            return 0.0

        score = 0.0

        for term in query_terms:
            tf = doc_term_frequencies.get(term, 0)

            if tf == 0:
                continue

            numerator = tf * (self.k1 + 1)
            denominator = tf + self.k1 * (
                1 - self.b + self.b * (token_count / self.avgdl)
            )

            score += numerator / denominator

        return score

    def normalized_score(
        self,
        query_terms: List[str],
        doc_term_frequencies: Dict[str, int],
        token_count: int,
    ) -> float:
        """
        Keyword match in [0, 1]: raw score averaged per query term, halved, capped at 1.

        Returns:
            0.0 for an empty query
        """
        if not query_terms:
            return 0.0

        per_term = self.score(query_terms, doc_term_frequencies, token_count) / len(query_terms)
        return min(1.0, per_term / 2)
