"""Daily activity streaks on UTC calendar days."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import NamedTuple


class StreakState(NamedTuple):
    current_streak: int
    longest_streak: int
    last_activity_at: datetime | None


def as_utc(dt: datetime) -> datetime:
    """Normalize to an aware UTC datetime (SQLite hands back naive values)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole UTC calendar days from ``earlier`` to ``later``."""
    return (as_utc(later).date() - as_utc(earlier).date()).days


def advance_streak(state: StreakState, now: datetime) -> StreakState:
    """Fold one completed job at ``now`` into the streak.

    - no prior activity: streak becomes 1
    - same calendar day: no-op on every field, the activity timestamp included
    - next calendar day: streak + 1
    - any longer gap: streak resets to 1
    """
    if state.last_activity_at is None:
        current = 1
    else:
        gap = days_between(state.last_activity_at, now)
        if gap <= 0:
            return state
        current = state.current_streak + 1 if gap == 1 else 1

    return StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_activity_at=now,
    )
