"""
Multi-signal retrieval scoring (semantic + keyword + recency + type preference).
"""

from .retrieval_scorer import (
    DEFAULT_WEIGHTS,
    INTENT_TYPE_PREFERENCE,
    Candidate,
    CandidateScores,
    QueryIntent,
    RetrievalScorer,
    ScoreBreakdown,
    ScoringWeights,
    StructuredQuery,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "INTENT_TYPE_PREFERENCE",
    "Candidate",
    "CandidateScores",
    "QueryIntent",
    "RetrievalScorer",
    "ScoreBreakdown",
    "ScoringWeights",
    "StructuredQuery",
]
