"""Notification models for schedule events."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin


class ScheduleNotificationType(str, enum.Enum):
    """Type of schedule notification."""

    # Session lifecycle
    SESSION_SCHEDULED = "SESSION_SCHEDULED"
    SESSION_APPROVED = "SESSION_APPROVED"
    SESSION_REJECTED = "SESSION_REJECTED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    SESSION_COMPLETED = "SESSION_COMPLETED"
    SESSION_NO_SHOW = "SESSION_NO_SHOW"
    SESSION_REMINDER = "SESSION_REMINDER"
    SCHEDULE_CHANGE = "SCHEDULE_CHANGE"

    # Availability review
    AVAILABILITY_UPDATED = "AVAILABILITY_UPDATED"
    AVAILABILITY_APPROVED = "AVAILABILITY_APPROVED"
    AVAILABILITY_REJECTED = "AVAILABILITY_REJECTED"


class ScheduleNotification(Base, UUIDMixin, TimestampMixin):
    """Notification for a user. Append-only apart from the read flag."""

    __tablename__ = "schedule_notifications"
    __table_args__ = (
        Index("ix_schedule_notifications_user_read", "user_id", "is_read"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("scheduled_sessions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    notification_type: Mapped[ScheduleNotificationType] = mapped_column(
        Enum(ScheduleNotificationType, name="schedule_notification_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Status
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
