"""Notification recorder for schedule events.

Recording is best-effort: callers invoke it after their own transaction has
committed. Inserts go through a short-lived session on the same engine, so a
failing insert is rolled back there, logged and reported without touching
the caller's unit of work.
"""
import uuid
from typing import Any, Iterable

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import AuthorizationError, NotFoundError
from src.core.models import utcnow
from src.core.observability import capture_exception
from src.core.pagination import Page, PageMeta, PaginationParams
from src.core.transaction import transaction

from .models import ScheduleNotification, ScheduleNotificationType

logger = structlog.get_logger(__name__)


class NotificationRecorder:
    """Append and read schedule notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        recipient_id: uuid.UUID,
        notification_type: ScheduleNotificationType,
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
        session_id: uuid.UUID | None = None,
    ) -> ScheduleNotification | None:
        """Record one notification. Returns None if the store rejected it."""
        recorded = await self.record_many(
            [recipient_id], notification_type, title, message, payload, session_id,
        )
        return recorded[0] if recorded else None

    async def record_many(
        self,
        recipient_ids: Iterable[uuid.UUID],
        notification_type: ScheduleNotificationType,
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
        session_id: uuid.UUID | None = None,
    ) -> list[ScheduleNotification]:
        """Record the same notification for several recipients in one write."""
        notifications = [
            ScheduleNotification(
                user_id=recipient_id,
                session_id=session_id,
                notification_type=notification_type,
                title=title,
                message=message,
                payload=payload,
            )
            for recipient_id in dict.fromkeys(recipient_ids)
        ]
        if not notifications:
            return []

        try:
            async with AsyncSession(self.db.bind, expire_on_commit=False) as store:
                store.add_all(notifications)
                await store.commit()
        except SQLAlchemyError as e:
            logger.warning(
                "notification_record_failed",
                notification_type=notification_type.value,
                recipients=len(notifications),
                session_id=str(session_id) if session_id else None,
                error=str(e),
            )
            capture_exception(e, tags={"component": "notification_recorder"})
            return []

        logger.debug(
            "notification_recorded",
            notification_type=notification_type.value,
            recipients=len(notifications),
        )
        return notifications

    async def list_notifications(
        self,
        user_id: uuid.UUID,
        pagination: PaginationParams,
        is_read: bool | None = None,
    ) -> tuple[Page[ScheduleNotification], int]:
        """Newest first, plus the recipient's unread count."""
        filters = [ScheduleNotification.user_id == user_id]
        if is_read is not None:
            filters.append(ScheduleNotification.is_read == is_read)

        total = (await self.db.execute(
            select(func.count(ScheduleNotification.id)).where(*filters)
        )).scalar() or 0

        unread_count = (await self.db.execute(
            select(func.count(ScheduleNotification.id)).where(
                ScheduleNotification.user_id == user_id,
                ScheduleNotification.is_read == False,  # noqa: E712
            )
        )).scalar() or 0

        result = await self.db.execute(
            select(ScheduleNotification)
            .where(*filters)
            .order_by(ScheduleNotification.created_at.desc(), ScheduleNotification.id)
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        items = list(result.scalars().all())

        return Page(items=items, meta=PageMeta.build(pagination, total)), unread_count

    async def mark_read(
        self, notification_id: uuid.UUID, caller_id: uuid.UUID,
    ) -> ScheduleNotification:
        """Mark one notification read. Marking twice is a no-op."""
        async with transaction(self.db):
            notification = await self.db.get(ScheduleNotification, notification_id)
            if notification is None:
                raise NotFoundError("Notification not found")
            if notification.user_id != caller_id:
                raise AuthorizationError("You can only update your own notifications")

            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()

        return notification

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        """Mark every unread notification of the user read; returns rows changed."""
        async with transaction(self.db):
            result = await self.db.execute(
                update(ScheduleNotification)
                .where(
                    ScheduleNotification.user_id == user_id,
                    ScheduleNotification.is_read == False,  # noqa: E712
                )
                .values(is_read=True, read_at=utcnow())
            )
        return result.rowcount or 0
