"""Schedule models for coach availability and booked sessions."""
import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.config.database import Base
from src.core.models import TimestampMixin, UUIDMixin


class SessionType(str, enum.Enum):
    """Kind of session a slot offers."""

    ONE_ON_ONE = "ONE_ON_ONE"
    GROUP = "GROUP"
    ASSESSMENT = "ASSESSMENT"


class ApprovalStatus(str, enum.Enum):
    """Admin review state of a coach's availability day."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ScheduledSessionStatus(str, enum.Enum):
    """Session lifecycle."""

    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses that occupy the coach's calendar
ACTIVE_SESSION_STATUSES = (
    ScheduledSessionStatus.PENDING_APPROVAL,
    ScheduledSessionStatus.APPROVED,
)

TERMINAL_SESSION_STATUSES = frozenset({
    ScheduledSessionStatus.REJECTED,
    ScheduledSessionStatus.CANCELLED,
    ScheduledSessionStatus.COMPLETED,
    ScheduledSessionStatus.NO_SHOW,
})

ALLOWED_TRANSITIONS: dict[ScheduledSessionStatus, frozenset[ScheduledSessionStatus]] = {
    ScheduledSessionStatus.PENDING_APPROVAL: frozenset({
        ScheduledSessionStatus.APPROVED,
        ScheduledSessionStatus.REJECTED,
    }),
    ScheduledSessionStatus.APPROVED: frozenset({
        ScheduledSessionStatus.COMPLETED,
        ScheduledSessionStatus.CANCELLED,
        ScheduledSessionStatus.NO_SHOW,
    }),
    ScheduledSessionStatus.REJECTED: frozenset(),
    ScheduledSessionStatus.CANCELLED: frozenset(),
    ScheduledSessionStatus.COMPLETED: frozenset(),
    ScheduledSessionStatus.NO_SHOW: frozenset(),
}


class CoachAvailability(Base, UUIDMixin, TimestampMixin):
    """A coach's recurring template for one day of the week."""

    __tablename__ = "coach_availabilities"
    __table_args__ = (
        UniqueConstraint("coach_id", "day_of_week", name="uq_coach_availability_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_coach_availability_day"),
    )

    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )  # 0=Sunday..6=Saturday
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="approval_status_enum", native_enum=False),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    coach = relationship("User", foreign_keys=[coach_id], lazy="selectin")
    time_slots: Mapped[list["TimeSlot"]] = relationship(
        "TimeSlot",
        back_populates="availability",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TimeSlot.start_time",
    )


class TimeSlot(Base, UUIDMixin, TimestampMixin):
    """Bookable interval within a day, with capacity and pricing."""

    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("max_bookings >= 1", name="ck_time_slot_max_bookings"),
        CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_bookings",
            name="ck_time_slot_capacity",
        ),
        CheckConstraint("end_time > start_time", name="ck_time_slot_order"),
    )

    availability_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coach_availabilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[str] = mapped_column(
        String(5), nullable=False, index=True,
    )  # HH:MM
    end_time: Mapped[str] = mapped_column(
        String(5), nullable=False,
    )  # HH:MM
    is_available: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    max_bookings: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False,
    )
    current_bookings: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False,
    )
    session_type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="session_type_enum", native_enum=False),
        default=SessionType.ONE_ON_ONE,
        nullable=False,
    )

    # Relationships
    availability: Mapped[CoachAvailability] = relationship(
        "CoachAvailability", back_populates="time_slots", lazy="selectin",
    )

    @property
    def remaining_capacity(self) -> int:
        return max(self.max_bookings - self.current_bookings, 0)


class ScheduledSession(Base, UUIDMixin, TimestampMixin):
    """A concrete booking of a slot on a specific date."""

    __tablename__ = "scheduled_sessions"
    __table_args__ = (
        CheckConstraint("duration BETWEEN 15 AND 480", name="ck_scheduled_session_duration"),
        Index("ix_scheduled_sessions_coach_window", "coach_id", "session_date", "ends_at"),
    )

    time_slot_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("time_slots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )  # owned by the course catalogue

    # Wall-clock start in SCHEDULE_TIMEZONE, and its end
    session_date: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, index=True,
    )
    ends_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False,
    )
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="session_type_enum", native_enum=False),
        default=SessionType.ONE_ON_ONE,
        nullable=False,
    )
    status: Mapped[ScheduledSessionStatus] = mapped_column(
        Enum(ScheduledSessionStatus, name="scheduled_session_status_enum", native_enum=False),
        default=ScheduledSessionStatus.PENDING_APPROVAL,
        nullable=False,
        index=True,
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    meeting_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Transition audit
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Reminder tracking
    reminder_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, server_default="false",
    )

    # Relationships
    coach = relationship("User", foreign_keys=[coach_id], lazy="selectin")
    student = relationship("User", foreign_keys=[student_id], lazy="selectin")
    time_slot = relationship("TimeSlot", lazy="selectin")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES
