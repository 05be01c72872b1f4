"""Experience awards and geometric level thresholds.

Level 1 needs 100 XP; every later threshold is ``floor(100 * 1.5 ** (level - 1))``.
Overflow XP carries into the next level, so one award can level up several times.
"""

from __future__ import annotations

import math
from typing import NamedTuple

BASE_THRESHOLD = 100
THRESHOLD_GROWTH = 1.5

HIGH_IMPROVEMENT_PCT = 70
HIGH_IMPROVEMENT_XP = 50
STANDARD_XP = 30


class LevelState(NamedTuple):
    level: int
    experience: int
    experience_to_next_level: int


INITIAL_LEVEL_STATE = LevelState(level=1, experience=0, experience_to_next_level=BASE_THRESHOLD)


def threshold_for_level(level: int) -> int:
    """XP needed to clear ``level``."""
    return math.floor(BASE_THRESHOLD * THRESHOLD_GROWTH ** (level - 1))


def experience_award(improvement_percentage: float) -> int:
    """Step-function award: 50 XP at >=70% improvement, 30 XP otherwise."""
    return HIGH_IMPROVEMENT_XP if improvement_percentage >= HIGH_IMPROVEMENT_PCT else STANDARD_XP


def apply_experience(state: LevelState, amount: int) -> LevelState:
    """Add ``amount`` XP and run the level-up loop.

    Postcondition: ``experience < experience_to_next_level``.
    """
    if amount < 0:
        msg = "experience award must be non-negative"
        raise ValueError(msg)

    level = state.level
    experience = state.experience + amount
    threshold = state.experience_to_next_level

    while experience >= threshold:
        experience -= threshold
        level += 1
        threshold = threshold_for_level(level)

    return LevelState(level=level, experience=experience, experience_to_next_level=threshold)
