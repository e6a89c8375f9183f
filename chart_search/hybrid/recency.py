"""
Recency boosting with exponential time decay.

Two decay curves exist for two call sites and are kept as separate functions:

- half_life_decay: 2^(-age_days / half_life_days), used by hybrid search.
  Default half-life is 180 days (6 months): 0d → 1.00, 180d → 0.50, 360d → 0.25

- exponential_decay: e^(-rate × age_days), used by the multi-signal scorer.
  Default rate is 0.01/day: 0d → 1.00, 30d → 0.74, 180d → 0.17, 365d → 0.03

Recency is an enhancement, not a correctness requirement: unparseable
timestamps never raise, they fall back to a neutral boost and get logged.
"""

import logging
import math
from datetime import datetime
from typing import Optional, Union

from ..timestamps import age_in_days, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_HALF_LIFE_DAYS = 180.0
DEFAULT_DECAY_RATE = 0.01


def half_life_decay(
    occurred_at: Union[str, datetime, None],
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: Optional[datetime] = None,
) -> float:
    """
    Half-life recency boost for hybrid search.

    Args:
        occurred_at: When the clinical event happened (ISO string or datetime)
        half_life_days: Age at which the boost drops to 0.5
        now: Reference time (default: current UTC time)

    Returns:
        Boost in (0, 1]. Future dates are clamped to 1.0, invalid timestamps
        resolve to 1.0 (neutral).
    """
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be positive, got {half_life_days}")

    parsed = parse_timestamp(occurred_at)
    if parsed is None:
        logger.warning(f"Unparseable timestamp {occurred_at!r}, using neutral recency boost 1.0")
        return 1.0

    age_days = max(0.0, age_in_days(parsed, now))
    return math.pow(2.0, -age_days / half_life_days)


def exponential_decay(
    occurred_at: Union[str, datetime, None],
    rate: float = DEFAULT_DECAY_RATE,
    now: Optional[datetime] = None,
    fallback: float = 0.5,
) -> float:
    """
    Flat exponential recency boost for the multi-signal scorer.

    Args:
        occurred_at: When the clinical event happened (ISO string or datetime)
        rate: Decay rate per day
        now: Reference time (default: current UTC time)
        fallback: Value returned for invalid timestamps (0.5 = neutral signal)

    Returns:
        e^(-rate × age_days), 1.0 for future dates
    """
    parsed = parse_timestamp(occurred_at)
    if parsed is None:
        logger.warning(f"Unparseable timestamp {occurred_at!r}, using recency fallback {fallback}")
        return fallback

    age_days = age_in_days(parsed, now)
    if age_days < 0:
        return 1.0
    return math.exp(-rate * age_days)
