"""Notifications router for schedule notifications."""
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, PaginationParams
from src.domains.auth.dependencies import CurrentActor

from .schemas import MarkAllReadResponse, NotificationListResponse, NotificationResponse
from .service import NotificationRecorder

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
    is_read: Annotated[bool | None, Query()] = None,
) -> NotificationListResponse:
    """List notifications for current user, newest first."""
    result, unread_count = await NotificationRecorder(db).list_notifications(
        current_actor.id, PaginationParams(page=page, limit=limit), is_read=is_read,
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in result.items],
        pagination=result.meta,
        unread_count=unread_count,
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MarkAllReadResponse:
    """Mark all notifications as read."""
    updated = await NotificationRecorder(db).mark_all_read(current_actor.id)
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationResponse:
    """Mark a notification as read."""
    notification = await NotificationRecorder(db).mark_read(notification_id, current_actor.id)
    return NotificationResponse.model_validate(notification)
