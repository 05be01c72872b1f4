"""Notification and activity persistence.

Completion writes are best-effort from the runner's point of view: the job
is already completed when they run, and a failure here never changes that.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.db.models import Activity, Notification
from algoreview.errors import NotFound

logger = logging.getLogger(__name__)

NOTIFICATION_REVIEW_COMPLETE = "review_complete"
ACTIVITY_REVIEW_COMPLETED = "review_completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str,
    link: str | None = None,
    data: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        link=link,
        data=data or {},
        is_read=False,
        created_at=now or _utcnow(),
    )
    db.add(notification)
    await db.flush()
    return notification


async def record_activity(
    db: AsyncSession,
    user_id: str,
    activity_type: str,
    title: str,
    description: str | None = None,
    related_job_id: str | None = None,
    data: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Activity:
    """Record a user activity for the feed."""
    activity = Activity(
        user_id=user_id,
        activity_type=activity_type,
        title=title,
        description=description,
        related_job_id=related_job_id,
        data=data or {},
        created_at=now or _utcnow(),
    )
    db.add(activity)
    await db.flush()
    return activity


async def record_job_completion(
    db: AsyncSession,
    *,
    job_id: str,
    user_id: str,
    title: str,
    language: str,
    improvement_percentage: float,
    now: datetime | None = None,
) -> Notification:
    """Activity entry plus "review complete" notification for one completed job."""
    improvement = f"{improvement_percentage:g}"
    await record_activity(
        db,
        user_id,
        ACTIVITY_REVIEW_COMPLETED,
        title=f"Code review completed: {title}",
        description=f"{improvement}% improvement achieved",
        related_job_id=job_id,
        data={"language": language, "improvement": improvement_percentage},
        now=now,
    )
    return await create_notification(
        db,
        user_id,
        NOTIFICATION_REVIEW_COMPLETE,
        title="Code review complete",
        message=f'Your "{title}" review is ready with {improvement}% improvement',
        link=f"/jobs/{job_id}",
        data={"job_id": job_id, "improvement": improvement_percentage},
        now=now,
    )


async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 10,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def get_unread_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


async def mark_as_read(
    db: AsyncSession, user_id: str, notification_id: int, now: datetime | None = None
) -> Notification:
    """Mark one of the caller's notifications read. Idempotent; ``NotFound`` for foreign ids."""
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        msg = "Notification not found"
        raise NotFound(msg)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = now or _utcnow()
        await db.flush()
    return notification


async def mark_all_as_read(db: AsyncSession, user_id: str, now: datetime | None = None) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=now or _utcnow())
    )
    await db.flush()
    return result.rowcount


async def get_activity_feed(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Activity], int]:
    """Get the user's personal activity feed (paginated)."""
    total_result = await db.execute(
        select(func.count()).select_from(Activity).where(Activity.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Activity)
        .where(Activity.user_id == user_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def prune_notifications(db: AsyncSession, older_than: datetime) -> int:
    """Delete notifications created before ``older_than``."""
    result = await db.execute(delete(Notification).where(Notification.created_at < older_than))
    if result.rowcount:
        logger.info("Pruned %d notifications older than %s", result.rowcount, older_than.isoformat())
    return result.rowcount
