"""Notification and activity feed endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from algoreview.auth.dependencies import Caller, get_current_caller
from algoreview.database import get_session
from algoreview.db.models import Notification
from algoreview.feed.schemas import (
    ActivityFeedResponse,
    ActivityResponse,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
)
from algoreview.feed.service import (
    get_activity_feed,
    get_notifications,
    get_unread_count,
    mark_all_as_read,
    mark_as_read,
)

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


def _notification_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        type=n.type,
        title=n.title,
        message=n.message,
        link=n.link,
        data=n.data or {},
        is_read=n.is_read,
        read_at=n.read_at,
        created_at=n.created_at,
    )


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    """Newest-first notifications plus the caller's unread count."""
    notifications, total = await get_notifications(db, caller.user_id, page, per_page)
    unread = await get_unread_count(db, caller.user_id)
    return NotificationListResponse(
        notifications=[_notification_response(n) for n in notifications],
        unread_count=unread,
        total=total,
        page=page,
        per_page=per_page,
    )


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> NotificationResponse:
    notification = await mark_as_read(db, caller.user_id, notification_id)
    await db.commit()
    return _notification_response(notification)


@router.post("/notifications/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> MarkAllReadResponse:
    count = await mark_all_as_read(db, caller.user_id)
    await db.commit()
    return MarkAllReadResponse(detail=f"Marked {count} notifications as read", count=count)


@router.get("/users/me/activity", response_model=ActivityFeedResponse)
async def my_activity(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_session),
) -> ActivityFeedResponse:
    """The caller's personal activity feed, newest first."""
    activities, total = await get_activity_feed(db, caller.user_id, page, per_page)
    return ActivityFeedResponse(
        activities=[
            ActivityResponse(
                id=a.id,
                type=a.activity_type,
                title=a.title,
                description=a.description,
                related_job_id=a.related_job_id,
                data=a.data or {},
                created_at=a.created_at,
            )
            for a in activities
        ],
        total=total,
        page=page,
        per_page=per_page,
    )
