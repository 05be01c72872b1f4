"""Leaderboard score from a user's cumulative stats.

score = total_jobs*10 + average_improvement*5 + level*50 + current_streak*15 + average_quality*2,
floored to an integer. Weighted toward volume and consistency over single big wins.
"""

from __future__ import annotations

import math

JOB_WEIGHT = 10
IMPROVEMENT_WEIGHT = 5
LEVEL_WEIGHT = 50
STREAK_WEIGHT = 15
QUALITY_WEIGHT = 2


def calculate_score(
    total_jobs: int,
    average_improvement: float,
    level: int,
    current_streak: int,
    average_quality: float,
) -> int:
    """Deterministic, pure score function."""
    raw = (
        total_jobs * JOB_WEIGHT
        + average_improvement * IMPROVEMENT_WEIGHT
        + level * LEVEL_WEIGHT
        + current_streak * STREAK_WEIGHT
        + average_quality * QUALITY_WEIGHT
    )
    return math.floor(raw)
