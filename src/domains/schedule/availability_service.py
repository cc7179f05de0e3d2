"""Availability registry: coaches' weekly templates and admin review."""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.core.models import utcnow
from src.core.pagination import Page, PaginationParams
from src.core.transaction import transaction
from src.domains.auth.guards import (
    Actor,
    can_manage_availability,
    ensure_allowed,
    require_admin,
)
from src.domains.notifications.models import ScheduleNotificationType
from src.domains.notifications.service import NotificationRecorder
from src.domains.users.models import UserRole
from src.domains.users.service import UserService

from . import queries
from .conflicts import is_bookable_availability
from .models import (
    ACTIVE_SESSION_STATUSES,
    ApprovalStatus,
    CoachAvailability,
    ScheduledSession,
    TimeSlot,
)
from .schemas import AvailabilityDayInput, AvailabilityListFilters, SetAvailabilityRequest
from .timeutils import day_bounds, day_of_week, normalize_hhmm, slot_interval

logger = structlog.get_logger(__name__)

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


@dataclass
class DailySlot:
    """A template slot placed on a concrete date with its bookings."""

    slot: TimeSlot
    starts_at: datetime
    ends_at: datetime
    is_bookable: bool
    sessions: list[ScheduledSession] = field(default_factory=list)

    @property
    def remaining_capacity(self) -> int:
        return self.slot.remaining_capacity


@dataclass
class AvailabilityView:
    coach_id: uuid.UUID
    availability: list[CoachAvailability]
    on_date: date | None = None
    day_of_week: int | None = None
    slots: list[DailySlot] = field(default_factory=list)


def validate_day_entries(entries: list[AvailabilityDayInput]) -> None:
    """Semantic checks on a set-availability payload.

    Raises ``ValidationError`` listing the first problem found.
    """
    seen_days: set[int] = set()
    for entry in entries:
        if not 0 <= entry.day_of_week <= 6:
            raise ValidationError(
                "day_of_week must be between 0 (Sunday) and 6 (Saturday)",
                details={"day_of_week": entry.day_of_week},
            )
        if entry.day_of_week in seen_days:
            raise ValidationError(
                f"Day {entry.day_of_week} appears more than once",
                details={"day_of_week": entry.day_of_week},
            )
        seen_days.add(entry.day_of_week)

        intervals: list[tuple[str, str]] = []
        for slot in entry.time_slots:
            start, end = normalize_hhmm(slot.start_time), normalize_hhmm(slot.end_time)
            if start >= end:
                raise ValidationError(
                    f"Slot {start}-{end} must end after it starts",
                    details={"day_of_week": entry.day_of_week, "start_time": start, "end_time": end},
                )
            if slot.max_bookings < 1:
                raise ValidationError(
                    "max_bookings must be at least 1",
                    details={"day_of_week": entry.day_of_week, "start_time": start},
                )
            if slot.price < 0:
                raise ValidationError(
                    "price must not be negative",
                    details={"day_of_week": entry.day_of_week, "start_time": start},
                )
            intervals.append((start, end))

        intervals.sort()
        for (prev_start, prev_end), (next_start, next_end) in zip(intervals, intervals[1:]):
            if next_start < prev_end:
                raise ValidationError(
                    f"Slots {prev_start}-{prev_end} and {next_start}-{next_end} overlap",
                    details={"day_of_week": entry.day_of_week},
                )


class AvailabilityRegistry:
    """Stores coach availability and drives its admin review."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserService(db)
        self.notifier = NotificationRecorder(db)

    async def set_availability(
        self,
        actor: Actor,
        coach_id: uuid.UUID,
        request: SetAvailabilityRequest,
    ) -> list[CoachAvailability]:
        """Replace the listed days of the coach's template.

        Days not in the request are left untouched. Every written day goes
        back to PENDING review.
        """
        ensure_allowed(can_manage_availability(actor, coach_id))
        validate_day_entries(request.availability)
        days = [entry.day_of_week for entry in request.availability]

        async with transaction(self.db):
            coach = await self.users.lock_user(coach_id)
            if coach is None or coach.role != UserRole.COACH:
                raise NotFoundError("Coach not found", details={"coach_id": str(coach_id)})

            result = await self.db.execute(
                select(CoachAvailability).where(
                    CoachAvailability.coach_id == coach_id,
                    CoachAvailability.day_of_week.in_(days),
                )
            )
            existing = list(result.scalars().all())

            slot_days = {
                slot.id: availability.day_of_week
                for availability in existing
                for slot in availability.time_slots
            }
            if slot_days:
                live = await self.db.execute(
                    select(ScheduledSession.id, ScheduledSession.time_slot_id).where(
                        ScheduledSession.time_slot_id.in_(list(slot_days)),
                        ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
                    )
                )
                booked = live.all()
                if booked:
                    raise ConflictError(
                        "Availability has active bookings and cannot be replaced",
                        details={
                            "booked_slots": [
                                {
                                    "day_of_week": slot_days[slot_id],
                                    "time_slot_id": str(slot_id),
                                    "session_id": str(session_id),
                                }
                                for session_id, slot_id in booked
                            ]
                        },
                    )

                # Finished sessions keep their times but lose the template link
                await self.db.execute(
                    update(ScheduledSession)
                    .where(ScheduledSession.time_slot_id.in_(list(slot_days)))
                    .values(time_slot_id=None)
                )
            for availability in existing:
                await self.db.delete(availability)
            await self.db.flush()

            written: list[CoachAvailability] = []
            for entry in request.availability:
                availability = CoachAvailability(
                    coach_id=coach_id,
                    day_of_week=entry.day_of_week,
                    is_active=entry.is_active,
                    approval_status=ApprovalStatus.PENDING,
                    time_slots=[
                        TimeSlot(
                            start_time=normalize_hhmm(slot.start_time),
                            end_time=normalize_hhmm(slot.end_time),
                            is_available=slot.is_available,
                            max_bookings=slot.max_bookings,
                            current_bookings=0,
                            price=slot.price,
                            session_type=slot.session_type,
                        )
                        for slot in sorted(
                            entry.time_slots, key=lambda s: normalize_hhmm(s.start_time),
                        )
                    ],
                )
                self.db.add(availability)
                written.append(availability)

        logger.info(
            "availability_set",
            coach_id=str(coach_id),
            days=days,
            slots=sum(len(a.time_slots) for a in written),
            actor_id=str(actor.id),
        )

        if not actor.is_admin:
            admin_ids = await self.users.list_admin_ids()
            await self.notifier.record_many(
                admin_ids,
                ScheduleNotificationType.AVAILABILITY_UPDATED,
                title="Coach availability updated",
                message=(
                    f"{coach.full_name} updated availability for "
                    f"{', '.join(DAY_NAMES[d] for d in sorted(days))}. Review required."
                ),
                payload={"coach_id": str(coach_id), "days": sorted(days)},
            )

        return sorted(written, key=lambda a: a.day_of_week)

    async def get_availability(
        self,
        actor: Actor,
        coach_id: uuid.UUID,
        on: date | None = None,
    ) -> AvailabilityView:
        """Weekly template, plus per-slot occupancy when ``on`` is given."""
        ensure_allowed(can_manage_availability(actor, coach_id))

        result = await self.db.execute(
            select(CoachAvailability)
            .where(CoachAvailability.coach_id == coach_id)
            .order_by(CoachAvailability.day_of_week)
        )
        availability = list(result.scalars().all())
        view = AvailabilityView(coach_id=coach_id, availability=availability)
        if on is None:
            return view

        view.on_date = on
        view.day_of_week = day_of_week(on)
        template = next((a for a in availability if a.day_of_week == view.day_of_week), None)
        if template is None:
            return view

        day_start, day_end = day_bounds(on)
        sessions_result = await self.db.execute(
            select(ScheduledSession)
            .where(
                ScheduledSession.coach_id == coach_id,
                ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
                ScheduledSession.session_date >= day_start,
                ScheduledSession.session_date < day_end,
            )
            .order_by(ScheduledSession.session_date)
        )
        sessions = list(sessions_result.scalars().all())
        template_open = is_bookable_availability(template)

        for slot in template.time_slots:
            starts_at, ends_at = slot_interval(on, slot.start_time, slot.end_time)
            slot_sessions = [s for s in sessions if s.time_slot_id == slot.id]
            view.slots.append(DailySlot(
                slot=slot,
                starts_at=starts_at,
                ends_at=ends_at,
                is_bookable=template_open and slot.is_available and slot.remaining_capacity > 0,
                sessions=slot_sessions,
            ))
        return view

    async def list_all(
        self,
        actor: Actor,
        filters: AvailabilityListFilters,
        pagination: PaginationParams,
    ) -> Page[CoachAvailability]:
        return await queries.list_all_coach_availabilities(self.db, actor, filters, pagination)

    async def approve(
        self,
        actor: Actor,
        availability_id: uuid.UUID,
        admin_notes: str | None = None,
    ) -> CoachAvailability:
        """Admin approval: the day becomes active and bookable."""
        ensure_allowed(require_admin(actor))

        async with transaction(self.db):
            availability = await self._get(availability_id)
            availability.approval_status = ApprovalStatus.APPROVED
            availability.is_active = True
            availability.admin_notes = admin_notes
            availability.rejection_reason = None
            availability.reviewed_at = utcnow()
            availability.reviewed_by = actor.id

        logger.info(
            "availability_approved",
            availability_id=str(availability_id),
            coach_id=str(availability.coach_id),
            admin_id=str(actor.id),
        )
        await self.notifier.record(
            availability.coach_id,
            ScheduleNotificationType.AVAILABILITY_APPROVED,
            title="Availability approved",
            message=f"Your {DAY_NAMES[availability.day_of_week]} availability has been approved.",
            payload={
                "availability_id": str(availability.id),
                "day_of_week": availability.day_of_week,
                "admin_notes": admin_notes,
            },
        )
        return availability

    async def reject(
        self,
        actor: Actor,
        availability_id: uuid.UUID,
        rejection_reason: str,
        admin_notes: str | None = None,
    ) -> CoachAvailability:
        """Admin rejection: the day is deactivated."""
        ensure_allowed(require_admin(actor))
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError("A rejection reason is required")

        async with transaction(self.db):
            availability = await self._get(availability_id)
            availability.approval_status = ApprovalStatus.REJECTED
            availability.is_active = False
            availability.rejection_reason = rejection_reason
            availability.admin_notes = admin_notes
            availability.reviewed_at = utcnow()
            availability.reviewed_by = actor.id

        logger.info(
            "availability_rejected",
            availability_id=str(availability_id),
            coach_id=str(availability.coach_id),
            admin_id=str(actor.id),
        )
        await self.notifier.record(
            availability.coach_id,
            ScheduleNotificationType.AVAILABILITY_REJECTED,
            title="Availability rejected",
            message=(
                f"Your {DAY_NAMES[availability.day_of_week]} availability was rejected: "
                f"{rejection_reason}"
            ),
            payload={
                "availability_id": str(availability.id),
                "day_of_week": availability.day_of_week,
                "rejection_reason": rejection_reason,
                "admin_notes": admin_notes,
            },
        )
        return availability

    async def _get(self, availability_id: uuid.UUID) -> CoachAvailability:
        availability = await self.db.get(CoachAvailability, availability_id)
        if availability is None:
            raise NotFoundError(
                "Availability not found",
                details={"availability_id": str(availability_id)},
            )
        return availability
