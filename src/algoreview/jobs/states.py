"""Job status state machine: queued -> analyzing -> completed | failed."""

from __future__ import annotations

from algoreview.db.models import AnalysisJob
from algoreview.errors import IllegalTransition

QUEUED = "queued"
ANALYZING = "analyzing"
COMPLETED = "completed"
FAILED = "failed"

ALL_STATUSES = frozenset({QUEUED, ANALYZING, COMPLETED, FAILED})
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})
PENDING_STATUSES = frozenset({QUEUED, ANALYZING})

_ALLOWED: dict[str, frozenset[str]] = {
    QUEUED: frozenset({ANALYZING}),
    ANALYZING: frozenset({COMPLETED, FAILED}),
    COMPLETED: frozenset(),
    FAILED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in _ALLOWED.get(current, frozenset())


def transition(job: AnalysisJob, target: str) -> None:
    """Move ``job`` to ``target`` or raise ``IllegalTransition``."""
    if target not in ALL_STATUSES:
        msg = f"Job {job.id}: unknown status {target!r}"
        raise IllegalTransition(msg)
    if not can_transition(job.status, target):
        msg = f"Job {job.id}: {job.status} -> {target} is not allowed"
        raise IllegalTransition(msg)
    job.status = target
