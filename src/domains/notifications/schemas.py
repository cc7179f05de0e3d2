"""Notification schemas for API validation."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from src.core.pagination import PageMeta

from .models import ScheduleNotificationType


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    id: UUID
    user_id: UUID
    session_id: UUID | None
    notification_type: ScheduleNotificationType
    title: str
    message: str
    payload: dict[str, Any] | None = None
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    """Schema for notification list response."""

    notifications: list[NotificationResponse]
    pagination: PageMeta
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
