"""Score cache key builders.

All leaderboard keys share the ``leaderboard:`` prefix so one invalidation
drops every cached page for every period.
"""

from __future__ import annotations

LEADERBOARD_PREFIX = "leaderboard:"
STATS_PREFIX = "stats:"
JOB_PREFIX = "job:"


def stats_key(user_id: str) -> str:
    return f"{STATS_PREFIX}{user_id}"


def leaderboard_page_key(period: str, page: int, page_size: int) -> str:
    return f"{LEADERBOARD_PREFIX}{period}:page:{page}:{page_size}"


def leaderboard_user_key(period: str, user_id: str) -> str:
    return f"{LEADERBOARD_PREFIX}{period}:user:{user_id}"


def job_status_key(job_id: str) -> str:
    return f"{JOB_PREFIX}{job_id}:status"
