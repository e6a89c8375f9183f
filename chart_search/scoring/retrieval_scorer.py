"""
Multi-signal retrieval scorer.

Ranks retrieval candidates by a weighted sum of four signals, each in [0, 1]:

    combined = w_semantic × semantic_similarity   (from vector search)
             + w_keyword  × keyword_match         (simplified BM25, no IDF)
             + w_recency  × recency_boost         (e^(-0.01 × age_days))
             + w_type     × type_preference       (intent × artifact type table)

Default weights: semantic 0.4, keyword 0.3, recency 0.2, type 0.1.

This is a second ranking path next to HybridSearchEngine: it scores single
candidates without access to the keyword index, so keyword match uses a fixed
average document length and recency uses its own decay curve.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..bm25.scorer import SimplifiedBM25
from ..bm25.tokenizer import term_frequencies, tokenize
from ..hybrid.recency import DEFAULT_DECAY_RATE, exponential_decay
from ..models import ChunkRecord, Timestamp

logger = logging.getLogger(__name__)


class QueryIntent(str, Enum):
    RETRIEVE_MEDICATIONS = "RETRIEVE_MEDICATIONS"
    RETRIEVE_CARE_PLANS = "RETRIEVE_CARE_PLANS"
    RETRIEVE_NOTES = "RETRIEVE_NOTES"
    SUMMARY = "SUMMARY"
    COMPARISON = "COMPARISON"
    RETRIEVE_ALL = "RETRIEVE_ALL"
    UNKNOWN = "UNKNOWN"


NEUTRAL_TYPE_PREFERENCE = 0.5

# Preference per artifact type, "default" applies to unmapped types
INTENT_TYPE_PREFERENCE: Dict[QueryIntent, Dict[str, float]] = {
    QueryIntent.RETRIEVE_MEDICATIONS: {
        "medication_order": 1.0,
        "prescription": 1.0,
        "medication_list": 0.9,
        "progress_note": 0.5,
        "default": 0.3,
    },
    QueryIntent.RETRIEVE_CARE_PLANS: {
        "care_plan": 1.0,
        "treatment_plan": 1.0,
        "care_coordination": 0.9,
        "progress_note": 0.6,
        "default": 0.3,
    },
    QueryIntent.RETRIEVE_NOTES: {
        "progress_note": 1.0,
        "clinical_note": 1.0,
        "encounter": 0.9,
        "visit_note": 0.9,
        "default": 0.4,
    },
    QueryIntent.SUMMARY: {"default": 0.8},
    QueryIntent.COMPARISON: {"default": 0.8},
    QueryIntent.RETRIEVE_ALL: {"default": 0.8},
    QueryIntent.UNKNOWN: {"default": NEUTRAL_TYPE_PREFERENCE},
}

# Diversity penalties against each already selected result
SAME_TYPE_PENALTY = 0.2
SAME_ARTIFACT_PENALTY = 0.3


@dataclass(frozen=True)
class ScoringWeights:
    semantic: float = 0.4
    keyword: float = 0.3
    recency: float = 0.2
    type_preference: float = 0.1

    @property
    def total(self) -> float:
        return self.semantic + self.keyword + self.recency + self.type_preference


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass
class StructuredQuery:
    """Query text plus its classified intent"""
    original_query: str
    intent: QueryIntent = QueryIntent.UNKNOWN


@dataclass
class CandidateScores:
    semantic_similarity: float
    keyword_match: float
    recency_boost: float
    type_preference: float
    combined: float


@dataclass
class Candidate:
    """Chunk with every signal kept for explainability"""
    chunk: ChunkRecord
    scores: CandidateScores
    rank: Optional[int] = None


@dataclass
class ScoreBreakdown:
    semantic_contribution: float
    keyword_contribution: float
    recency_contribution: float
    type_contribution: float
    total: float


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _with_combined(candidate: Candidate, combined: float) -> Candidate:
    return replace(candidate, scores=replace(candidate.scores, combined=combined))


@dataclass
class RetrievalScorer:
    """
    Scores and ranks retrieval candidates using multiple signals.

    All ranking methods return new Candidate objects; inputs are never mutated.
    """

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    decay_rate: float = DEFAULT_DECAY_RATE
    bm25: SimplifiedBM25 = field(default_factory=SimplifiedBM25)

    # ------------------------------------------------------------------
    # Individual signals
    # ------------------------------------------------------------------

    def calculate_keyword_match(self, content: str, query: str) -> float:
        """
        Keyword match in [0, 1] using simplified BM25 (assumed avgdl = 100).

        Returns:
            0.0 when the query has no tokens
        """
        query_tokens = tokenize(query)
        if not query_tokens:
            return 0.0

        content_tokens = tokenize(content)
        return self.bm25.normalized_score(
            query_tokens,
            term_frequencies(content_tokens),
            len(content_tokens),
        )

    def calculate_recency_boost(
        self,
        occurred_at: Optional[Timestamp],
        now: Optional[datetime] = None,
    ) -> float:
        """e^(-rate × age_days); 0.5 for invalid dates, 1.0 for future dates"""
        return exponential_decay(occurred_at, rate=self.decay_rate, now=now, fallback=0.5)

    def calculate_type_preference(self, artifact_type: str, intent: QueryIntent) -> float:
        preferences = INTENT_TYPE_PREFERENCE.get(intent)
        if not preferences:
            return NEUTRAL_TYPE_PREFERENCE

        if artifact_type in preferences:
            return preferences[artifact_type]

        return preferences.get("default", NEUTRAL_TYPE_PREFERENCE)

    def combine_scores(
        self,
        semantic: float,
        keyword: float,
        recency: float,
        type_preference: float,
        weights: Optional[ScoringWeights] = None,
    ) -> float:
        """Weighted combination, every input clamped to [0, 1] first"""
        weights = weights or self.weights

        return (
            weights.semantic * _clamp(semantic)
            + weights.keyword * _clamp(keyword)
            + weights.recency * _clamp(recency)
            + weights.type_preference * _clamp(type_preference)
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_candidate(
        self,
        chunk: ChunkRecord,
        query: StructuredQuery,
        semantic_similarity: float,
        now: Optional[datetime] = None,
    ) -> Candidate:
        """
        Score one chunk against a structured query.

        Args:
            chunk: Candidate chunk (text + metadata)
            query: Query text and intent
            semantic_similarity: Similarity from vector search (0-1)
            now: Reference time for recency (default: current UTC time)
        """
        keyword_match = self.calculate_keyword_match(chunk.text, query.original_query)
        recency_boost = self.calculate_recency_boost(chunk.occurred_at, now=now)
        type_preference = self.calculate_type_preference(chunk.artifact_type, query.intent)

        combined = self.combine_scores(
            semantic_similarity,
            keyword_match,
            recency_boost,
            type_preference,
        )

        return Candidate(
            chunk=chunk,
            scores=CandidateScores(
                semantic_similarity=semantic_similarity,
                keyword_match=keyword_match,
                recency_boost=recency_boost,
                type_preference=type_preference,
                combined=combined,
            ),
        )

    def batch_score(
        self,
        chunks: Sequence[ChunkRecord],
        query: StructuredQuery,
        similarities: Sequence[float],
        now: Optional[datetime] = None,
    ) -> List[Candidate]:
        """Score chunks in input order (no ranking)"""
        if len(chunks) != len(similarities):
            raise ValueError(
                f"Chunks and similarities must have the same length: {len(chunks)} vs {len(similarities)}"
            )
        return [
            self.score_candidate(chunk, query, similarity, now=now)
            for chunk, similarity in zip(chunks, similarities)
        ]

    def score_and_rank(
        self,
        chunks: Sequence[ChunkRecord],
        query: StructuredQuery,
        similarities: Sequence[float],
        top_k: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Candidate]:
        """
        Score every chunk and rank the results.

        Raises:
            ValueError: chunks and similarities differ in length
        """
        candidates = self.batch_score(chunks, query, similarities, now=now)
        ranked = self.rank_candidates(candidates, top_k)

        logger.debug(f"Scored {len(candidates)} candidates for intent {query.intent.value}")
        return ranked

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    @staticmethod
    def rank_candidates(candidates: Sequence[Candidate], top_k: Optional[int] = None) -> List[Candidate]:
        """
        Stable descending sort by combined score, ranks assigned from 1.

        Args:
            candidates: Scored candidates
            top_k: Truncate to this many (ignored when None or <= 0)
        """
        ordered = sorted(candidates, key=lambda c: c.scores.combined, reverse=True)
        ranked = [replace(candidate, rank=position) for position, candidate in enumerate(ordered, start=1)]

        if top_k is not None and top_k > 0:
            return ranked[:top_k]
        return ranked

    @staticmethod
    def normalize_scores(candidates: Sequence[Candidate]) -> List[Candidate]:
        """
        Min-max normalize combined scores to [0, 1].

        Candidates are returned unchanged when every combined score is equal.
        """
        if not candidates:
            return []

        scores = [c.scores.combined for c in candidates]
        min_score = min(scores)
        max_score = max(scores)

        if max_score == min_score:
            return list(candidates)

        span = max_score - min_score
        return [_with_combined(c, (c.scores.combined - min_score) / span) for c in candidates]

    def rerank(self, candidates: Sequence[Candidate], weights: ScoringWeights) -> List[Candidate]:
        """Recompute combined scores with other weights, then re-rank"""
        rescored = [
            _with_combined(
                candidate,
                self.combine_scores(
                    candidate.scores.semantic_similarity,
                    candidate.scores.keyword_match,
                    candidate.scores.recency_boost,
                    candidate.scores.type_preference,
                    weights,
                ),
            )
            for candidate in candidates
        ]
        return self.rank_candidates(rescored)

    def diversity_rank(self, candidates: Sequence[Candidate], diversity_weight: float = 0.3) -> List[Candidate]:
        """
        Greedy diversity-aware re-ranking.

        Repeatedly picks the candidate with the best adjusted score:

            adjusted = (1 - w) × combined - w × penalty

        where penalty grows by 0.2 for each already selected result of the same
        artifact_type, plus 0.3 more when it also comes from the same artifact.
        Adjusted scores are floored at 0 and become the new combined scores.

        Args:
            candidates: Scored candidates (any order)
            diversity_weight: w in [0, 1]; 0 keeps the relevance order
        """
        if not 0.0 <= diversity_weight <= 1.0:
            raise ValueError(f"diversity_weight must be between 0 and 1, got {diversity_weight}")
        if len(candidates) <= 1:
            return self.rank_candidates(candidates)

        remaining = self.rank_candidates(candidates)
        selected: List[Candidate] = []

        while remaining:
            best_index = 0
            best_score = -1.0

            for index, candidate in enumerate(remaining):
                penalty = self._diversity_penalty(candidate, selected)
                adjusted = max(
                    0.0,
                    (1 - diversity_weight) * candidate.scores.combined - diversity_weight * penalty,
                )
                # Strict comparison keeps the higher-ranked candidate on ties
                if adjusted > best_score:
                    best_index = index
                    best_score = adjusted

            chosen = remaining.pop(best_index)
            selected.append(replace(
                _with_combined(chosen, best_score),
                rank=len(selected) + 1,
            ))

        return selected

    @staticmethod
    def _diversity_penalty(candidate: Candidate, selected: Sequence[Candidate]) -> float:
        penalty = 0.0
        for previous in selected:
            if candidate.chunk.artifact_type == previous.chunk.artifact_type:
                penalty += SAME_TYPE_PENALTY
                if candidate.chunk.artifact_id == previous.chunk.artifact_id:
                    penalty += SAME_ARTIFACT_PENALTY
        return penalty

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------

    @staticmethod
    def get_default_weights() -> ScoringWeights:
        return DEFAULT_WEIGHTS

    def set_weights(
        self,
        semantic: Optional[float] = None,
        keyword: Optional[float] = None,
        recency: Optional[float] = None,
        type_preference: Optional[float] = None,
    ) -> ScoringWeights:
        """
        Override some weights (unset ones fall back to the defaults).

        Weights should sum to 1.0; other sums are accepted with a warning.
        """
        overrides = {
            "semantic": semantic,
            "keyword": keyword,
            "recency": recency,
            "type_preference": type_preference,
        }
        weights = replace(DEFAULT_WEIGHTS, **{k: v for k, v in overrides.items() if v is not None})

        if abs(weights.total - 1.0) > 0.01:
            logger.warning(
                f"Scoring weights sum to {weights.total:.2f}, expected 1.0. Consider normalizing weights."
            )

        self.weights = weights
        return weights

    # ------------------------------------------------------------------
    # Explainability
    # ------------------------------------------------------------------

    def get_score_breakdown(
        self,
        candidate: Candidate,
        weights: Optional[ScoringWeights] = None,
    ) -> ScoreBreakdown:
        weights = weights or self.weights
        scores = candidate.scores

        return ScoreBreakdown(
            semantic_contribution=weights.semantic * scores.semantic_similarity,
            keyword_contribution=weights.keyword * scores.keyword_match,
            recency_contribution=weights.recency * scores.recency_boost,
            type_contribution=weights.type_preference * scores.type_preference,
            total=scores.combined,
        )

    def explain_ranking(self, candidate: Candidate) -> str:
        """Human-readable score breakdown for debugging"""
        breakdown = self.get_score_breakdown(candidate)
        weights = self.weights
        scores = candidate.scores
        chunk = candidate.chunk

        lines = [
            f"Rank: {candidate.rank if candidate.rank is not None else 'N/A'}",
            f"Combined Score: {scores.combined:.3f}",
            "",
            "Score Breakdown:",
            f"  Semantic ({weights.semantic * 100:.0f}%): {scores.semantic_similarity:.3f} → {breakdown.semantic_contribution:.3f}",
            f"  Keyword  ({weights.keyword * 100:.0f}%): {scores.keyword_match:.3f} → {breakdown.keyword_contribution:.3f}",
            f"  Recency  ({weights.recency * 100:.0f}%): {scores.recency_boost:.3f} → {breakdown.recency_contribution:.3f}",
            f"  Type     ({weights.type_preference * 100:.0f}%): {scores.type_preference:.3f} → {breakdown.type_contribution:.3f}",
            "",
            f"Chunk: {chunk.chunk_id}",
            f"Type: {chunk.artifact_type}",
            f"Date: {chunk.occurred_at}",
        ]
        return "\n".join(lines)
