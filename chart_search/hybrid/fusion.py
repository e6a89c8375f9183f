"""
Score fusion for hybrid search (semantic + keyword channels).

Semantic similarities (cosine, roughly 0-1) and BM25 scores (unbounded) live on
different scales, so each channel is min-max normalized on its own before the
alpha-weighted blend:

    combined = (alpha × semantic_norm + (1 - alpha) × keyword_norm) × recency_boost

    alpha = 1.0 → pure semantic
    alpha = 0.0 → pure keyword

A chunk found by only one channel gets 0 for the other. That is expected: a
record can be a pure keyword hit (exact drug name) or a pure semantic hit
(paraphrase).
"""

import logging
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Union

from ..errors import InvalidSearchOptions
from ..models import CombinedResult, ScoredChunk
from .recency import DEFAULT_HALF_LIFE_DAYS, half_life_decay

logger = logging.getLogger(__name__)


def normalize_scores(results: List[ScoredChunk]) -> List[ScoredChunk]:
    """
    Min-max normalize scores to [0, 1], preserving order.

    When every score is equal (including a single result) each one maps to 1.0,
    so a channel that produced a uniform result set still contributes signal.

    Example:
        >>> normalize_scores([ScoredChunk("a", 2.0), ScoredChunk("b", 4.0)])
        [ScoredChunk(chunk_id='a', score=0.0), ScoredChunk(chunk_id='b', score=1.0)]
    """
    if not results:
        return []

    scores = [r.score for r in results]
    min_score = min(scores)
    max_score = max(scores)
    score_range = max_score - min_score

    if score_range == 0:
        return [ScoredChunk(chunk_id=r.chunk_id, score=1.0) for r in results]

    return [
        ScoredChunk(chunk_id=r.chunk_id, score=(r.score - min_score) / score_range)
        for r in results
    ]


def validate_alpha(alpha: float) -> float:
    if alpha is None or not 0.0 <= alpha <= 1.0:
        raise InvalidSearchOptions(f"alpha must be within [0, 1], got {alpha}")
    return float(alpha)


def combine_scores(
    semantic_results: List[ScoredChunk],
    keyword_results: List[ScoredChunk],
    alpha: float,
    apply_recency: bool = False,
    timestamps: Optional[Mapping[str, Union[str, datetime, None]]] = None,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: Optional[datetime] = None,
) -> List[CombinedResult]:
    """
    Fuse semantic and keyword results into one ranking.

    Args:
        semantic_results: Vector search hits (raw similarity)
        keyword_results: BM25 hits (raw score)
        alpha: Semantic weight in [0, 1]
        apply_recency: Multiply by half-life decay of each chunk's timestamp
        timestamps: chunk_id → occurred_at (used only when apply_recency is set;
            chunks without an entry get a neutral boost of 1.0)
        half_life_days: Recency half-life
        now: Reference time for recency (default: current UTC time)

    Returns:
        Combined results sorted by score descending. Ties keep union order:
        semantic hits first (in their order), then keyword-only hits.
    """
    alpha = validate_alpha(alpha)

    semantic_map: Dict[str, float] = {
        r.chunk_id: r.score for r in normalize_scores(semantic_results)
    }
    keyword_map: Dict[str, float] = {
        r.chunk_id: r.score for r in normalize_scores(keyword_results)
    }

    # dict preserves first-seen order → deterministic tie-break
    all_chunk_ids = dict.fromkeys(
        [r.chunk_id for r in semantic_results] + [r.chunk_id for r in keyword_results]
    )

    timestamps = timestamps or {}
    combined: List[CombinedResult] = []

    for chunk_id in all_chunk_ids:
        semantic_score = semantic_map.get(chunk_id, 0.0)
        keyword_score = keyword_map.get(chunk_id, 0.0)

        recency_boost = 1.0
        if apply_recency and chunk_id in timestamps:
            recency_boost = half_life_decay(timestamps[chunk_id], half_life_days, now=now)

        base_score = alpha * semantic_score + (1 - alpha) * keyword_score

        combined.append(CombinedResult(
            chunk_id=chunk_id,
            score=base_score * recency_boost,
            semantic_score=semantic_score,
            keyword_score=keyword_score,
            recency_boost=recency_boost,
        ))

    combined.sort(key=lambda r: r.score, reverse=True)

    logger.debug(
        f"Combined {len(semantic_results)} semantic + {len(keyword_results)} keyword hits "
        f"into {len(combined)} results (alpha={alpha}, recency={apply_recency})"
    )
    return combined
