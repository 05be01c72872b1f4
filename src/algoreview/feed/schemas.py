"""Pydantic response models for notification and activity endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    link: str | None = None
    data: dict[str, Any] = {}
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
    total: int
    page: int
    per_page: int


class MarkAllReadResponse(BaseModel):
    detail: str
    count: int


class ActivityResponse(BaseModel):
    id: int
    type: str
    title: str
    description: str | None = None
    related_job_id: str | None = None
    data: dict[str, Any] = {}
    created_at: datetime


class ActivityFeedResponse(BaseModel):
    activities: list[ActivityResponse]
    total: int
    page: int
    per_page: int
