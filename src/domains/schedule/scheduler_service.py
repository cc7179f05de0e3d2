"""Session scheduler: booking against slots and the approval state machine.

Every mutating method runs its checks and writes inside one ``transaction``.
Booking-related methods first lock the coach's row so concurrent requests
for the same coach serialise, and slot capacity is taken with a conditional
UPDATE whose row count decides success. Notifications are recorded after
the transaction commits.
"""
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.core.exceptions import (
    BulkBookingError,
    CapacityExceededError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from src.core.models import utcnow
from src.core.transaction import transaction
from src.domains.auth.guards import (
    Actor,
    can_book_for,
    can_conclude_session,
    ensure_allowed,
    is_participant,
    require_admin,
)
from src.domains.notifications.models import ScheduleNotificationType
from src.domains.notifications.service import NotificationRecorder
from src.domains.users.models import User
from src.domains.users.service import UserService

from .conflicts import ConflictDetector, is_bookable_availability, overlaps
from .models import (
    ACTIVE_SESSION_STATUSES,
    ALLOWED_TRANSITIONS,
    CoachAvailability,
    ScheduledSession,
    ScheduledSessionStatus,
    TimeSlot,
)
from .schemas import BookSessionRequest, BulkBookSessionRequest
from .timeutils import day_of_week, schedule_now, slot_interval, to_wall_clock

logger = structlog.get_logger(__name__)

MIN_DURATION = 15
MAX_DURATION = 480

# Per-entry failures reported by a bulk booking instead of aborting the scan
BULK_ENTRY_ERRORS = (NotFoundError, ValidationError, ConflictError, CapacityExceededError)


@dataclass
class BookingPlan:
    """A validated booking waiting to be written."""

    slot: TimeSlot
    coach_id: uuid.UUID
    start: datetime
    end: datetime
    duration: int


def _append_note(existing: str | None, line: str) -> str:
    return f"{existing}\n{line}" if existing else line


def _format_when(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


class SessionScheduler:
    """Creates bookings and moves sessions through their lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserService(db)
        self.conflicts = ConflictDetector(db)
        self.notifier = NotificationRecorder(db)

    # ==================== Booking ====================

    async def book_session(self, actor: Actor, request: BookSessionRequest) -> ScheduledSession:
        """Book one session into a slot on a date.

        Raises:
            NotFoundError: slot missing, unavailable, or its day is inactive/rejected
            ValidationError: date is not the slot's weekday, or lies in the past
            ConflictError: coach already has an overlapping session
            CapacityExceededError: slot is full
        """
        student_id = request.student_id or actor.id

        async with transaction(self.db):
            slot = await self._load_bookable_slot(request.time_slot_id)
            coach_id = slot.availability.coach_id
            ensure_allowed(can_book_for(actor, coach_id, student_id))

            coach = await self.users.lock_user(coach_id)
            student = await self._get_student(student_id)
            plan = self._plan(slot, coach_id, request.session_date, request.duration)

            conflicts = await self.conflicts.find_conflicts(
                coach_id, plan.start, plan.end, same_slot_id=slot.id,
            )
            if conflicts:
                raise ConflictError(
                    "Coach already has a session in this time range",
                    details={"conflicting_session_ids": [str(s.id) for s in conflicts]},
                )

            await self._reserve(slot)
            session = self._new_session(
                plan,
                student_id=student.id,
                course_id=request.course_id,
                title=request.title or self._default_title(slot, coach, plan.start),
                description=request.description,
                notes=request.notes,
                meeting_url=request.meeting_url,
            )
            self.db.add(session)

        logger.info(
            "session_booked",
            session_id=str(session.id),
            time_slot_id=str(slot.id),
            coach_id=str(coach_id),
            student_id=str(student_id),
            session_date=session.session_date.isoformat(),
        )
        await self._notify_booked(session)
        return session

    async def bulk_book_sessions(
        self, actor: Actor, request: BulkBookSessionRequest,
    ) -> list[ScheduledSession]:
        """Book several sessions for one student, all or nothing.

        Every entry is checked before anything is written. If any entry
        fails, ``BulkBookingError`` lists each failure by index and the
        batch is discarded.
        """
        if len(request.sessions) > settings.BULK_BOOKING_MAX_ENTRIES:
            raise ValidationError(
                f"At most {settings.BULK_BOOKING_MAX_ENTRIES} sessions can be booked at once",
                details={"count": len(request.sessions)},
            )
        student_id = request.student_id or actor.id

        async with transaction(self.db):
            student = await self._get_student(student_id)

            plans: list[tuple[int, BookingPlan]] = []
            failures: list[dict] = []
            pending: dict[uuid.UUID, int] = defaultdict(int)
            locked: dict[uuid.UUID, User | None] = {}

            for index, entry in enumerate(request.sessions):
                try:
                    slot = await self._load_bookable_slot(entry.time_slot_id)
                    coach_id = slot.availability.coach_id
                    ensure_allowed(can_book_for(actor, coach_id, student_id))
                    if coach_id not in locked:
                        locked[coach_id] = await self.users.lock_user(coach_id)

                    plan = self._plan(slot, coach_id, entry.session_date, entry.duration)

                    if await self.conflicts.has_conflict(
                        coach_id, plan.start, plan.end, same_slot_id=slot.id,
                    ):
                        raise ConflictError("Coach already has a session in this time range")

                    for earlier_index, earlier in plans:
                        same_instance = earlier.slot.id == slot.id and earlier.start == plan.start
                        if (
                            earlier.coach_id == coach_id
                            and not same_instance
                            and overlaps(earlier.start, earlier.end, plan.start, plan.end)
                        ):
                            raise ConflictError(f"Overlaps entry {earlier_index} of this request")

                    if slot.current_bookings + pending[slot.id] >= slot.max_bookings:
                        raise CapacityExceededError(slot.id, slot.max_bookings)
                except BULK_ENTRY_ERRORS as e:
                    failures.append({"index": index, "code": e.code, "message": e.message})
                    continue

                pending[slot.id] += 1
                plans.append((index, plan))

            if failures:
                logger.info("bulk_booking_rejected", failures=len(failures), entries=len(request.sessions))
                raise BulkBookingError(failures)

            sessions: list[ScheduledSession] = []
            for index, plan in plans:
                entry = request.sessions[index]
                try:
                    await self._reserve(plan.slot)
                except CapacityExceededError as e:
                    raise BulkBookingError([{"index": index, "code": e.code, "message": e.message}])
                session = self._new_session(
                    plan,
                    student_id=student.id,
                    course_id=request.course_id,
                    title=entry.title or self._default_title(
                        plan.slot, locked.get(plan.coach_id), plan.start,
                    ),
                    description=entry.description,
                    notes=entry.notes,
                )
                self.db.add(session)
                sessions.append(session)

        logger.info(
            "sessions_bulk_booked",
            count=len(sessions),
            student_id=str(student_id),
            session_ids=[str(s.id) for s in sessions],
        )
        for session in sessions:
            await self._notify_booked(session)
        return sessions

    # ==================== Admin review ====================

    async def approve(
        self,
        actor: Actor,
        session_id: uuid.UUID,
        admin_notes: str | None = None,
    ) -> ScheduledSession:
        ensure_allowed(require_admin(actor))

        async with transaction(self.db):
            session = await self._get_for_update(session_id)
            self._transition(session, ScheduledSessionStatus.APPROVED)
            session.approved_at = utcnow()
            session.approved_by = actor.id
            if admin_notes is not None:
                session.admin_notes = admin_notes

        logger.info("session_approved", session_id=str(session.id), admin_id=str(actor.id))
        await self.notifier.record_many(
            [session.student_id, session.coach_id],
            ScheduleNotificationType.SESSION_APPROVED,
            title="Session approved",
            message=f"'{session.title}' on {_format_when(session.session_date)} has been approved.",
            payload=self._payload(session, admin_notes=admin_notes),
            session_id=session.id,
        )
        return session

    async def reject(
        self,
        actor: Actor,
        session_id: uuid.UUID,
        rejection_reason: str,
        admin_notes: str | None = None,
    ) -> ScheduledSession:
        """Reject a pending session and give its slot capacity back."""
        ensure_allowed(require_admin(actor))
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError("A rejection reason is required")

        async with transaction(self.db):
            session = await self._get_for_update(session_id)
            self._transition(session, ScheduledSessionStatus.REJECTED)
            session.rejected_at = utcnow()
            session.rejected_by = actor.id
            session.rejection_reason = rejection_reason
            if admin_notes is not None:
                session.admin_notes = admin_notes
            await self._release(session)

        logger.info(
            "session_rejected",
            session_id=str(session.id),
            admin_id=str(actor.id),
            reason=rejection_reason,
        )
        await self.notifier.record_many(
            [session.student_id, session.coach_id],
            ScheduleNotificationType.SESSION_REJECTED,
            title="Session rejected",
            message=(
                f"'{session.title}' on {_format_when(session.session_date)} was rejected: "
                f"{rejection_reason}"
            ),
            payload=self._payload(session, reason=rejection_reason, admin_notes=admin_notes),
            session_id=session.id,
        )
        return session

    # ==================== Participant changes ====================

    async def reschedule(
        self,
        actor: Actor,
        session_id: uuid.UUID,
        new_start: datetime,
        new_end: datetime,
        reason: str | None = None,
    ) -> ScheduledSession:
        """Move a pending or approved session.

        An approved session goes back to PENDING_APPROVAL and needs a new
        admin approval.
        """
        start, end = to_wall_clock(new_start), to_wall_clock(new_end)
        if end <= start:
            raise ValidationError("New end time must be after the new start time")
        duration = int((end - start).total_seconds() // 60)
        if not MIN_DURATION <= duration <= MAX_DURATION:
            raise ValidationError(
                f"Session duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
                details={"duration": duration},
            )
        if start < schedule_now():
            raise ValidationError("Cannot reschedule a session into the past")

        async with transaction(self.db):
            session = await self._get_for_update(session_id)
            ensure_allowed(is_participant(actor, session.coach_id, session.student_id))
            if session.status not in ACTIVE_SESSION_STATUSES:
                raise InvalidStateTransitionError(session.status.value, "RESCHEDULED")

            await self.users.lock_user(session.coach_id)
            end = start + timedelta(minutes=duration)
            conflicts = await self.conflicts.find_conflicts(
                session.coach_id, start, end, exclude_session_id=session.id,
            )
            if conflicts:
                raise ConflictError(
                    "Coach already has a session in the new time range",
                    details={"conflicting_session_ids": [str(s.id) for s in conflicts]},
                )

            previous_start = session.session_date
            session.session_date = start
            session.duration = duration
            session.ends_at = end
            session.notes = _append_note(
                session.notes, f"Rescheduled: {reason or 'no reason given'}",
            )
            if session.status == ScheduledSessionStatus.APPROVED:
                # Any time change needs a fresh admin approval
                session.status = ScheduledSessionStatus.PENDING_APPROVAL
                session.approved_at = None
                session.approved_by = None

        logger.info(
            "session_rescheduled",
            session_id=str(session.id),
            previous_start=previous_start.isoformat(),
            new_start=start.isoformat(),
            actor_id=str(actor.id),
        )
        await self.notifier.record_many(
            [session.student_id, session.coach_id],
            ScheduleNotificationType.SCHEDULE_CHANGE,
            title="Session rescheduled",
            message=(
                f"'{session.title}' moved from {_format_when(previous_start)} "
                f"to {_format_when(start)}."
            ),
            payload=self._payload(
                session, reason=reason, previous_start=previous_start.isoformat(),
            ),
            session_id=session.id,
        )
        return session

    async def cancel(
        self,
        actor: Actor,
        session_id: uuid.UUID,
        reason: str | None = None,
    ) -> ScheduledSession:
        """Cancel an approved session and release its slot capacity."""
        async with transaction(self.db):
            session = await self._get_for_update(session_id)
            ensure_allowed(is_participant(actor, session.coach_id, session.student_id))
            self._transition(session, ScheduledSessionStatus.CANCELLED)
            session.cancelled_at = utcnow()
            if reason:
                session.notes = _append_note(session.notes, f"Cancelled: {reason}")
            await self._release(session)

        logger.info("session_cancelled", session_id=str(session.id), actor_id=str(actor.id))
        await self.notifier.record_many(
            [session.student_id, session.coach_id],
            ScheduleNotificationType.SESSION_CANCELLED,
            title="Session cancelled",
            message=f"'{session.title}' on {_format_when(session.session_date)} was cancelled.",
            payload=self._payload(session, reason=reason, cancelled_by=str(actor.id)),
            session_id=session.id,
        )
        return session

    async def complete(
        self,
        actor: Actor,
        session_id: uuid.UUID,
        notes: str | None = None,
    ) -> ScheduledSession:
        async with transaction(self.db):
            session = await self._get_for_update(session_id)
            ensure_allowed(can_conclude_session(actor, session.coach_id))
            self._transition(session, ScheduledSessionStatus.COMPLETED)
            session.completed_at = utcnow()
            if notes:
                session.notes = _append_note(session.notes, notes)

        logger.info("session_completed", session_id=str(session.id))
        await self.notifier.record(
            session.student_id,
            ScheduleNotificationType.SESSION_COMPLETED,
            title="Session completed",
            message=f"'{session.title}' has been marked as completed.",
            payload=self._payload(session, notes=notes),
            session_id=session.id,
        )
        return session

    async def mark_no_show(self, actor: Actor, session_id: uuid.UUID) -> ScheduledSession:
        async with transaction(self.db):
            session = await self._get_for_update(session_id)
            ensure_allowed(can_conclude_session(actor, session.coach_id))
            self._transition(session, ScheduledSessionStatus.NO_SHOW)

        logger.info("session_no_show", session_id=str(session.id))
        await self.notifier.record(
            session.student_id,
            ScheduleNotificationType.SESSION_NO_SHOW,
            title="Missed session",
            message=f"You were marked absent for '{session.title}' on {_format_when(session.session_date)}.",
            payload=self._payload(session),
            session_id=session.id,
        )
        return session

    async def get_session(self, actor: Actor, session_id: uuid.UUID) -> ScheduledSession:
        session = await self.db.get(ScheduledSession, session_id)
        if session is None:
            raise NotFoundError("Session not found", details={"session_id": str(session_id)})
        ensure_allowed(is_participant(actor, session.coach_id, session.student_id))
        return session

    # ==================== Internals ====================

    def _transition(self, session: ScheduledSession, target: ScheduledSessionStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[session.status]:
            raise InvalidStateTransitionError(session.status.value, target.value)
        session.status = target

    async def _get_for_update(self, session_id: uuid.UUID) -> ScheduledSession:
        result = await self.db.execute(
            select(ScheduledSession)
            .where(ScheduledSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFoundError("Session not found", details={"session_id": str(session_id)})
        return session

    async def _get_student(self, student_id: uuid.UUID) -> User:
        student = await self.users.get_user_by_id(student_id)
        if student is None or not student.is_active:
            raise NotFoundError("Student not found", details={"student_id": str(student_id)})
        return student

    async def _load_bookable_slot(self, slot_id: uuid.UUID) -> TimeSlot:
        result = await self.db.execute(
            select(TimeSlot, CoachAvailability)
            .join(CoachAvailability, TimeSlot.availability_id == CoachAvailability.id)
            .where(TimeSlot.id == slot_id)
            .execution_options(populate_existing=True)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Time slot not found", details={"time_slot_id": str(slot_id)})
        slot, availability = row
        if not slot.is_available or not is_bookable_availability(availability):
            raise NotFoundError(
                "Time slot is not available for booking",
                details={"time_slot_id": str(slot_id)},
            )
        return slot

    def _plan(
        self,
        slot: TimeSlot,
        coach_id: uuid.UUID,
        session_date: date,
        duration: int | None,
    ) -> BookingPlan:
        if day_of_week(session_date) != slot.availability.day_of_week:
            raise ValidationError(
                "Session date does not fall on the time slot's day of week",
                details={
                    "session_date": session_date.isoformat(),
                    "slot_day_of_week": slot.availability.day_of_week,
                },
            )

        start, slot_end = slot_interval(session_date, slot.start_time, slot.end_time)
        if start < schedule_now():
            raise ValidationError(
                "Cannot book a session in the past",
                details={"session_date": session_date.isoformat()},
            )

        minutes = duration or int((slot_end - start).total_seconds() // 60)
        if not MIN_DURATION <= minutes <= MAX_DURATION:
            raise ValidationError(
                f"Session duration must be between {MIN_DURATION} and {MAX_DURATION} minutes",
                details={"duration": minutes},
            )
        return BookingPlan(
            slot=slot,
            coach_id=coach_id,
            start=start,
            end=start + timedelta(minutes=minutes),
            duration=minutes,
        )

    def _new_session(self, plan: BookingPlan, **fields) -> ScheduledSession:
        return ScheduledSession(
            time_slot_id=plan.slot.id,
            coach_id=plan.coach_id,
            session_date=plan.start,
            ends_at=plan.end,
            duration=plan.duration,
            session_type=plan.slot.session_type,
            price=plan.slot.price if plan.slot.price is not None else Decimal("0"),
            status=ScheduledSessionStatus.PENDING_APPROVAL,
            **fields,
        )

    @staticmethod
    def _default_title(slot: TimeSlot, coach: User | None, start: datetime) -> str:
        kind = slot.session_type.value.replace("_", " ").title()
        with_coach = f" with {coach.full_name}" if coach is not None else ""
        return f"{kind} session{with_coach} on {_format_when(start)}"

    async def _reserve(self, slot: TimeSlot) -> None:
        """Take one unit of slot capacity or raise ``CapacityExceededError``."""
        result = await self.db.execute(
            update(TimeSlot)
            .where(
                TimeSlot.id == slot.id,
                TimeSlot.current_bookings < TimeSlot.max_bookings,
            )
            .values(current_bookings=TimeSlot.current_bookings + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CapacityExceededError(slot.id, slot.max_bookings)
        await self.db.refresh(slot, attribute_names=["current_bookings"])

    async def _release(self, session: ScheduledSession) -> None:
        """Give back the capacity a session holds on its slot, if any."""
        if session.time_slot_id is None:
            return
        result = await self.db.execute(
            update(TimeSlot)
            .where(
                TimeSlot.id == session.time_slot_id,
                TimeSlot.current_bookings > 0,
            )
            .values(current_bookings=TimeSlot.current_bookings - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "slot_capacity_already_released",
                session_id=str(session.id),
                time_slot_id=str(session.time_slot_id),
            )
            return
        slot = await self.db.get(TimeSlot, session.time_slot_id)
        if slot is not None:
            await self.db.refresh(slot, attribute_names=["current_bookings"])

    @staticmethod
    def _payload(session: ScheduledSession, **extra) -> dict:
        payload = {
            "session_id": str(session.id),
            "coach_id": str(session.coach_id),
            "student_id": str(session.student_id),
            "session_date": session.session_date.isoformat(),
            "status": session.status.value,
        }
        payload.update({k: v for k, v in extra.items() if v is not None})
        return payload

    async def _notify_booked(self, session: ScheduledSession) -> None:
        await self.notifier.record_many(
            [session.coach_id, session.student_id],
            ScheduleNotificationType.SESSION_SCHEDULED,
            title="Session scheduled",
            message=(
                f"'{session.title}' on {_format_when(session.session_date)} "
                "is pending admin approval."
            ),
            payload=self._payload(session),
            session_id=session.id,
        )
