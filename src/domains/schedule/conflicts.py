"""Conflict detection and slot availability for a coach's calendar.

Two sessions of a coach conflict when both are PENDING_APPROVAL or APPROVED
and their intervals overlap on ``[start, end)``. Touching boundaries do not
conflict. Sessions booked into the same slot on the same date share that
slot's capacity instead of conflicting with each other.
"""
import uuid
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings

from .models import (
    ACTIVE_SESSION_STATUSES,
    ApprovalStatus,
    CoachAvailability,
    ScheduledSession,
    SessionType,
    TimeSlot,
)
from .timeutils import day_bounds, day_of_week, slot_interval


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and end_a > start_b


def bookable_availability_conditions() -> list:
    """Conditions an availability must meet for its slots to be booked."""
    conditions = [
        CoachAvailability.is_active == True,  # noqa: E712
        CoachAvailability.approval_status != ApprovalStatus.REJECTED,
    ]
    if settings.REQUIRE_AVAILABILITY_APPROVAL:
        conditions.append(CoachAvailability.approval_status == ApprovalStatus.APPROVED)
    return conditions


def is_bookable_availability(availability: CoachAvailability) -> bool:
    if not availability.is_active or availability.approval_status == ApprovalStatus.REJECTED:
        return False
    if settings.REQUIRE_AVAILABILITY_APPROVAL:
        return availability.approval_status == ApprovalStatus.APPROVED
    return True


@dataclass
class AvailableSlot:
    """A slot instantiated on a date that can still take a booking."""

    slot: TimeSlot
    coach_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime

    @property
    def remaining_capacity(self) -> int:
        return self.slot.remaining_capacity


class ConflictDetector:
    """Overlap queries against stored sessions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_conflicts(
        self,
        coach_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_session_id: uuid.UUID | None = None,
        same_slot_id: uuid.UUID | None = None,
    ) -> list[ScheduledSession]:
        """Active sessions of the coach overlapping ``[start, end)``.

        ``same_slot_id`` skips sessions booked into that slot starting at
        ``start``; they are accounted for by the slot's capacity.
        """
        conditions = [
            ScheduledSession.coach_id == coach_id,
            ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
            ScheduledSession.session_date < end,
            ScheduledSession.ends_at > start,
        ]
        if exclude_session_id is not None:
            conditions.append(ScheduledSession.id != exclude_session_id)
        if same_slot_id is not None:
            conditions.append(
                or_(
                    ScheduledSession.time_slot_id.is_(None),
                    ScheduledSession.time_slot_id != same_slot_id,
                    ScheduledSession.session_date != start,
                )
            )

        result = await self.db.execute(
            select(ScheduledSession)
            .where(and_(*conditions))
            .order_by(ScheduledSession.session_date)
        )
        return list(result.scalars().all())

    async def has_conflict(
        self,
        coach_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_session_id: uuid.UUID | None = None,
        same_slot_id: uuid.UUID | None = None,
    ) -> bool:
        conflicts = await self.find_conflicts(
            coach_id, start, end, exclude_session_id, same_slot_id,
        )
        return bool(conflicts)

    async def get_available_slots(
        self,
        coach_id: uuid.UUID,
        on: date,
        session_type: SessionType = SessionType.ONE_ON_ONE,
    ) -> list[AvailableSlot]:
        """Slots of the coach bookable on ``on``, ascending by start time."""
        result = await self.db.execute(
            select(TimeSlot)
            .join(CoachAvailability, TimeSlot.availability_id == CoachAvailability.id)
            .where(
                CoachAvailability.coach_id == coach_id,
                CoachAvailability.day_of_week == day_of_week(on),
                *bookable_availability_conditions(),
                TimeSlot.session_type == session_type,
                TimeSlot.is_available == True,  # noqa: E712
                TimeSlot.current_bookings < TimeSlot.max_bookings,
            )
            .order_by(TimeSlot.start_time)
        )
        slots = list(result.scalars().all())
        if not slots:
            return []

        day_start, day_end = day_bounds(on)
        booked = await self.find_conflicts(coach_id, day_start, day_end)

        available: list[AvailableSlot] = []
        for slot in slots:
            starts_at, ends_at = slot_interval(on, slot.start_time, slot.end_time)
            occupied = any(
                overlaps(s.session_date, s.ends_at, starts_at, ends_at)
                and not (s.time_slot_id == slot.id and s.session_date == starts_at)
                for s in booked
            )
            if not occupied:
                available.append(AvailableSlot(
                    slot=slot,
                    coach_id=coach_id,
                    starts_at=starts_at,
                    ends_at=ends_at,
                ))
        return available
