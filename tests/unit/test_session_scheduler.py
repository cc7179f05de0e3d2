"""Tests for the session scheduler: booking and the approval state machine."""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.core.exceptions import (
    AuthorizationError,
    CapacityExceededError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from src.domains.auth.guards import Actor
from src.domains.notifications.models import ScheduleNotification, ScheduleNotificationType
from src.domains.schedule.conflicts import ConflictDetector
from src.domains.schedule.models import (
    ApprovalStatus,
    ScheduledSession,
    ScheduledSessionStatus,
    SessionType,
    TimeSlot,
)
from src.domains.schedule.scheduler_service import SessionScheduler
from src.domains.schedule.schemas import BookSessionRequest
from src.domains.schedule.timeutils import schedule_now
from src.domains.users.models import User

from tests.helpers import actor_for, at, next_weekday


async def _notifications_for(db: AsyncSession, user_id: uuid.UUID) -> list[ScheduleNotification]:
    result = await db.execute(
        select(ScheduleNotification)
        .where(ScheduleNotification.user_id == user_id)
        .order_by(ScheduleNotification.created_at)
    )
    return list(result.scalars().all())


@pytest.fixture
async def monday_slot(coach: User, make_availability) -> TimeSlot:
    """Monday 09:00-10:00, one seat, 50.00, one-on-one."""
    availability = await make_availability(
        coach.id, 1, [("09:00", "10:00")], max_bookings=1, price=Decimal("50.00"),
    )
    return availability.time_slots[0]


@pytest.fixture
async def pending_session(
    db_session: AsyncSession, monday_slot: TimeSlot, parent_actor: Actor,
) -> ScheduledSession:
    return await SessionScheduler(db_session).book_session(
        parent_actor,
        BookSessionRequest(time_slot_id=monday_slot.id, session_date=next_weekday(1)),
    )


@pytest.fixture
async def approved_session(
    db_session: AsyncSession, pending_session: ScheduledSession, admin_actor: Actor,
) -> ScheduledSession:
    return await SessionScheduler(db_session).approve(admin_actor, pending_session.id)


class TestMondayScenario:
    """Book, fill, reject and rebook a single-seat slot."""

    async def test_full_flow(
        self,
        db_session: AsyncSession,
        coach: User,
        parent: User,
        other_parent: User,
        admin: User,
        monday_slot: TimeSlot,
    ):
        coach_id, parent_id, slot_id = coach.id, parent.id, monday_slot.id
        first_actor, second_actor, admin_actor = (
            actor_for(parent), actor_for(other_parent), actor_for(admin),
        )
        monday = next_weekday(1)
        scheduler = SessionScheduler(db_session)

        open_slots = await ConflictDetector(db_session).get_available_slots(coach_id, monday)
        assert [s.slot.id for s in open_slots] == [slot_id]

        first = await scheduler.book_session(
            first_actor, BookSessionRequest(time_slot_id=slot_id, session_date=monday),
        )
        first_id = first.id
        assert first.status == ScheduledSessionStatus.PENDING_APPROVAL
        assert first.session_date == at(monday, 9)
        assert first.ends_at == at(monday, 10)
        assert first.duration == 60
        assert first.price == Decimal("50.00")
        assert first.coach_id == coach_id
        assert monday_slot.remaining_capacity == 0

        with pytest.raises(CapacityExceededError):
            await scheduler.book_session(
                second_actor, BookSessionRequest(time_slot_id=slot_id, session_date=monday),
            )

        rejected = await scheduler.reject(admin_actor, first_id, "schedule conflict")
        assert rejected.status == ScheduledSessionStatus.REJECTED
        assert rejected.rejection_reason == "schedule conflict"

        slot = await db_session.get(TimeSlot, slot_id)
        await db_session.refresh(slot)
        assert slot.remaining_capacity == 1

        student_notifications = await _notifications_for(db_session, parent_id)
        assert ScheduleNotificationType.SESSION_REJECTED in {
            n.notification_type for n in student_notifications
        }

        second = await scheduler.book_session(
            second_actor, BookSessionRequest(time_slot_id=slot_id, session_date=monday),
        )
        assert second.status == ScheduledSessionStatus.PENDING_APPROVAL
        await db_session.refresh(slot)
        assert slot.current_bookings == 1


class TestBookSession:
    """Tests for book_session."""

    @pytest.mark.parametrize("start,end,conflicts", [
        ("09:30", "10:30", True),
        ("10:00", "11:00", False),
    ])
    async def test_against_existing_approved_session(
        self,
        db_session: AsyncSession,
        coach: User,
        parent: User,
        parent_actor: Actor,
        make_availability,
        make_session,
        start,
        end,
        conflicts,
    ):
        """09:30 overlaps a 09:00-10:00 session; 10:00 only touches it."""
        monday = next_weekday(1)
        await make_session(coach.id, parent.id, start=at(monday, 9))
        availability = await make_availability(coach.id, 1, [(start, end)])
        request = BookSessionRequest(time_slot_id=availability.time_slots[0].id, session_date=monday)
        scheduler = SessionScheduler(db_session)

        if conflicts:
            with pytest.raises(ConflictError) as exc_info:
                await scheduler.book_session(parent_actor, request)
            assert exc_info.value.details["conflicting_session_ids"]
        else:
            session = await scheduler.book_session(parent_actor, request)
            assert session.session_date == at(monday, 10)

    async def test_group_slot_takes_several_students(
        self,
        db_session: AsyncSession,
        coach: User,
        parent: User,
        other_parent: User,
        make_availability,
    ):
        availability = await make_availability(
            coach.id, 1, [("16:00", "17:00")], max_bookings=2, session_type=SessionType.GROUP,
        )
        slot_id = availability.time_slots[0].id
        monday = next_weekday(1)
        scheduler = SessionScheduler(db_session)

        first = await scheduler.book_session(
            actor_for(parent), BookSessionRequest(time_slot_id=slot_id, session_date=monday),
        )
        second = await scheduler.book_session(
            actor_for(other_parent), BookSessionRequest(time_slot_id=slot_id, session_date=monday),
        )

        assert first.session_type == SessionType.GROUP
        assert second.session_date == first.session_date
        slot = await db_session.get(TimeSlot, slot_id)
        assert slot.current_bookings == 2

    async def test_default_title_and_custom_duration(
        self, db_session: AsyncSession, parent_actor: Actor, monday_slot: TimeSlot,
    ):
        monday = next_weekday(1)

        session = await SessionScheduler(db_session).book_session(
            parent_actor,
            BookSessionRequest(time_slot_id=monday_slot.id, session_date=monday, duration=45),
        )

        assert session.title.startswith("One On One session with Carla Mendes")
        assert session.duration == 45
        assert session.ends_at == at(monday, 9, 45)

    async def test_notifies_coach_and_student(
        self,
        db_session: AsyncSession,
        coach: User,
        parent: User,
        pending_session: ScheduledSession,
    ):
        for user_id in (coach.id, parent.id):
            notifications = await _notifications_for(db_session, user_id)
            assert [n.notification_type for n in notifications] == [
                ScheduleNotificationType.SESSION_SCHEDULED,
            ]
            assert notifications[0].session_id == pending_session.id
            assert notifications[0].payload["session_id"] == str(pending_session.id)

    async def test_date_on_wrong_weekday(
        self, db_session: AsyncSession, parent_actor: Actor, monday_slot: TimeSlot,
    ):
        with pytest.raises(ValidationError) as exc_info:
            await SessionScheduler(db_session).book_session(
                parent_actor,
                BookSessionRequest(time_slot_id=monday_slot.id, session_date=next_weekday(2)),
            )

        assert exc_info.value.details["slot_day_of_week"] == 1

    async def test_past_date_rejected(
        self, db_session: AsyncSession, parent_actor: Actor, monday_slot: TimeSlot,
    ):
        last_monday = next_weekday(1) - timedelta(days=7 * 2)

        with pytest.raises(ValidationError):
            await SessionScheduler(db_session).book_session(
                parent_actor,
                BookSessionRequest(time_slot_id=monday_slot.id, session_date=last_monday),
            )

    async def test_unknown_slot(self, db_session: AsyncSession, parent_actor: Actor):
        with pytest.raises(NotFoundError):
            await SessionScheduler(db_session).book_session(
                parent_actor,
                BookSessionRequest(time_slot_id=uuid.uuid4(), session_date=next_weekday(1)),
            )

    async def test_unavailable_slot(
        self, db_session: AsyncSession, parent_actor: Actor, monday_slot: TimeSlot,
    ):
        monday_slot.is_available = False
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await SessionScheduler(db_session).book_session(
                parent_actor,
                BookSessionRequest(time_slot_id=monday_slot.id, session_date=next_weekday(1)),
            )

    async def test_rejected_availability_is_not_bookable(
        self, db_session: AsyncSession, coach: User, parent_actor: Actor, make_availability,
    ):
        availability = await make_availability(
            coach.id, 1, [("09:00", "10:00")], approval_status=ApprovalStatus.REJECTED,
        )

        with pytest.raises(NotFoundError):
            await SessionScheduler(db_session).book_session(
                parent_actor,
                BookSessionRequest(
                    time_slot_id=availability.time_slots[0].id, session_date=next_weekday(1),
                ),
            )

    async def test_pending_availability_needs_approval_when_configured(
        self,
        db_session: AsyncSession,
        parent_actor: Actor,
        admin_actor: Actor,
        monday_slot: TimeSlot,
        monkeypatch,
    ):
        monkeypatch.setattr(settings, "REQUIRE_AVAILABILITY_APPROVAL", True)
        slot_id, availability_id = monday_slot.id, monday_slot.availability_id
        request = BookSessionRequest(time_slot_id=slot_id, session_date=next_weekday(1))
        scheduler = SessionScheduler(db_session)

        with pytest.raises(NotFoundError):
            await scheduler.book_session(parent_actor, request)

        from src.domains.schedule.availability_service import AvailabilityRegistry

        await AvailabilityRegistry(db_session).approve(admin_actor, availability_id)
        session = await scheduler.book_session(parent_actor, request)

        assert session.status == ScheduledSessionStatus.PENDING_APPROVAL

    async def test_parent_cannot_book_for_another_student(
        self,
        db_session: AsyncSession,
        other_parent: User,
        parent_actor: Actor,
        monday_slot: TimeSlot,
    ):
        with pytest.raises(AuthorizationError):
            await SessionScheduler(db_session).book_session(
                parent_actor,
                BookSessionRequest(
                    time_slot_id=monday_slot.id,
                    session_date=next_weekday(1),
                    student_id=other_parent.id,
                ),
            )

    async def test_coach_books_for_student(
        self,
        db_session: AsyncSession,
        parent: User,
        coach_actor: Actor,
        monday_slot: TimeSlot,
    ):
        session = await SessionScheduler(db_session).book_session(
            coach_actor,
            BookSessionRequest(
                time_slot_id=monday_slot.id, session_date=next_weekday(1), student_id=parent.id,
            ),
        )

        assert session.student_id == parent.id

    async def test_unknown_student(
        self, db_session: AsyncSession, admin_actor: Actor, monday_slot: TimeSlot,
    ):
        with pytest.raises(NotFoundError):
            await SessionScheduler(db_session).book_session(
                admin_actor,
                BookSessionRequest(
                    time_slot_id=monday_slot.id,
                    session_date=next_weekday(1),
                    student_id=uuid.uuid4(),
                ),
            )


class TestApproveReject:
    async def test_approve(
        self,
        db_session: AsyncSession,
        admin: User,
        parent: User,
        pending_session: ScheduledSession,
    ):
        approved = await SessionScheduler(db_session).approve(
            actor_for(admin), pending_session.id, admin_notes="ok",
        )

        assert approved.status == ScheduledSessionStatus.APPROVED
        assert approved.approved_by == admin.id
        assert approved.approved_at is not None
        assert approved.admin_notes == "ok"
        types = [n.notification_type for n in await _notifications_for(db_session, parent.id)]
        assert ScheduleNotificationType.SESSION_APPROVED in types

    async def test_only_admin_approves(
        self, db_session: AsyncSession, coach_actor: Actor, pending_session: ScheduledSession,
    ):
        with pytest.raises(AuthorizationError):
            await SessionScheduler(db_session).approve(coach_actor, pending_session.id)

    async def test_reject_requires_reason(
        self, db_session: AsyncSession, admin_actor: Actor, pending_session: ScheduledSession,
    ):
        with pytest.raises(ValidationError):
            await SessionScheduler(db_session).reject(admin_actor, pending_session.id, "")

    async def test_missing_session(self, db_session: AsyncSession, admin_actor: Actor):
        with pytest.raises(NotFoundError):
            await SessionScheduler(db_session).approve(admin_actor, uuid.uuid4())


class TestInvalidTransitions:
    """Disallowed transitions raise and leave the session untouched."""

    async def test_approve_twice(
        self, db_session: AsyncSession, admin_actor: Actor, approved_session: ScheduledSession,
    ):
        session_id = approved_session.id

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await SessionScheduler(db_session).approve(admin_actor, session_id)

        assert exc_info.value.details == {
            "current_status": "APPROVED",
            "target_status": "APPROVED",
        }
        session = await db_session.get(ScheduledSession, session_id)
        await db_session.refresh(session)
        assert session.status == ScheduledSessionStatus.APPROVED

    async def test_cancel_pending_session(
        self, db_session: AsyncSession, parent_actor: Actor, pending_session: ScheduledSession,
    ):
        """Pending requests are rejected by an admin rather than cancelled."""
        session_id = pending_session.id

        with pytest.raises(InvalidStateTransitionError):
            await SessionScheduler(db_session).cancel(parent_actor, session_id)

        session = await db_session.get(ScheduledSession, session_id)
        await db_session.refresh(session)
        assert session.status == ScheduledSessionStatus.PENDING_APPROVAL

    async def test_complete_pending_session(
        self, db_session: AsyncSession, coach_actor: Actor, pending_session: ScheduledSession,
    ):
        with pytest.raises(InvalidStateTransitionError):
            await SessionScheduler(db_session).complete(coach_actor, pending_session.id)

    async def test_reject_approved_session(
        self, db_session: AsyncSession, admin_actor: Actor, approved_session: ScheduledSession,
    ):
        with pytest.raises(InvalidStateTransitionError):
            await SessionScheduler(db_session).reject(admin_actor, approved_session.id, "late")

    async def test_terminal_sessions_cannot_move(
        self,
        db_session: AsyncSession,
        admin_actor: Actor,
        coach_actor: Actor,
        approved_session: ScheduledSession,
    ):
        session_id = approved_session.id
        scheduler = SessionScheduler(db_session)
        await scheduler.complete(coach_actor, session_id)

        with pytest.raises(InvalidStateTransitionError):
            await scheduler.cancel(admin_actor, session_id)
        with pytest.raises(InvalidStateTransitionError):
            await scheduler.mark_no_show(coach_actor, session_id)

        session = await db_session.get(ScheduledSession, session_id)
        await db_session.refresh(session)
        assert session.status == ScheduledSessionStatus.COMPLETED
        assert session.is_terminal


class TestCancel:
    async def test_cancel_releases_capacity(
        self,
        db_session: AsyncSession,
        coach: User,
        parent_actor: Actor,
        monday_slot: TimeSlot,
        approved_session: ScheduledSession,
    ):
        cancelled = await SessionScheduler(db_session).cancel(
            parent_actor, approved_session.id, reason="Family trip",
        )

        assert cancelled.status == ScheduledSessionStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert cancelled.notes.endswith("Cancelled: Family trip")
        await db_session.refresh(monday_slot)
        assert monday_slot.current_bookings == 0

        types = [n.notification_type for n in await _notifications_for(db_session, coach.id)]
        assert ScheduleNotificationType.SESSION_CANCELLED in types

    async def test_outsider_cannot_cancel(
        self, db_session: AsyncSession, other_parent: User, approved_session: ScheduledSession,
    ):
        with pytest.raises(AuthorizationError):
            await SessionScheduler(db_session).cancel(actor_for(other_parent), approved_session.id)


class TestReschedule:
    async def test_approved_session_goes_back_to_pending(
        self,
        db_session: AsyncSession,
        parent: User,
        parent_actor: Actor,
        approved_session: ScheduledSession,
    ):
        monday = next_weekday(1)

        moved = await SessionScheduler(db_session).reschedule(
            parent_actor, approved_session.id, at(monday, 14), at(monday, 15, 30), reason="Exam",
        )

        assert moved.status == ScheduledSessionStatus.PENDING_APPROVAL
        assert moved.approved_at is None
        assert moved.approved_by is None
        assert moved.session_date == at(monday, 14)
        assert moved.ends_at == at(monday, 15, 30)
        assert moved.duration == 90
        assert moved.notes.endswith("Rescheduled: Exam")

        types = [n.notification_type for n in await _notifications_for(db_session, parent.id)]
        assert ScheduleNotificationType.SCHEDULE_CHANGE in types

    async def test_pending_session_can_move(
        self, db_session: AsyncSession, coach_actor: Actor, pending_session: ScheduledSession,
    ):
        monday = next_weekday(1)

        moved = await SessionScheduler(db_session).reschedule(
            coach_actor, pending_session.id, at(monday, 11), at(monday, 12),
        )

        assert moved.status == ScheduledSessionStatus.PENDING_APPROVAL
        assert moved.notes == "Rescheduled: no reason given"

    async def test_overlapping_own_time_is_allowed(
        self, db_session: AsyncSession, parent_actor: Actor, pending_session: ScheduledSession,
    ):
        """Shifting by 30 minutes overlaps only the session itself."""
        monday = next_weekday(1)

        moved = await SessionScheduler(db_session).reschedule(
            parent_actor, pending_session.id, at(monday, 9, 30), at(monday, 10, 30),
        )

        assert moved.session_date == at(monday, 9, 30)

    async def test_conflict_with_other_session(
        self,
        db_session: AsyncSession,
        coach: User,
        other_parent: User,
        parent_actor: Actor,
        pending_session: ScheduledSession,
        make_session,
    ):
        monday = next_weekday(1)
        session_id = pending_session.id
        await make_session(coach.id, other_parent.id, start=at(monday, 14))

        with pytest.raises(ConflictError):
            await SessionScheduler(db_session).reschedule(
                parent_actor, session_id, at(monday, 14, 30), at(monday, 15, 30),
            )

        session = await db_session.get(ScheduledSession, session_id)
        await db_session.refresh(session)
        assert session.session_date == at(monday, 9)

    async def test_into_the_past(
        self, db_session: AsyncSession, parent_actor: Actor, pending_session: ScheduledSession,
    ):
        start = schedule_now() - timedelta(days=1)

        with pytest.raises(ValidationError):
            await SessionScheduler(db_session).reschedule(
                parent_actor, pending_session.id, start, start + timedelta(hours=1),
            )

    async def test_end_before_start(
        self, db_session: AsyncSession, parent_actor: Actor, pending_session: ScheduledSession,
    ):
        monday = next_weekday(1)

        with pytest.raises(ValidationError):
            await SessionScheduler(db_session).reschedule(
                parent_actor, pending_session.id, at(monday, 12), at(monday, 11),
            )

    async def test_terminal_session(
        self,
        db_session: AsyncSession,
        admin_actor: Actor,
        parent_actor: Actor,
        pending_session: ScheduledSession,
    ):
        session_id = pending_session.id
        scheduler = SessionScheduler(db_session)
        await scheduler.reject(admin_actor, session_id, "No")
        monday = next_weekday(1)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await scheduler.reschedule(parent_actor, session_id, at(monday, 11), at(monday, 12))

        assert exc_info.value.details["target_status"] == "RESCHEDULED"


class TestConclude:
    """Completion and no-show."""

    async def test_complete(
        self,
        db_session: AsyncSession,
        parent: User,
        coach_actor: Actor,
        approved_session: ScheduledSession,
    ):
        completed = await SessionScheduler(db_session).complete(
            coach_actor, approved_session.id, notes="Great progress",
        )

        assert completed.status == ScheduledSessionStatus.COMPLETED
        assert completed.completed_at is not None
        assert completed.notes == "Great progress"
        types = [n.notification_type for n in await _notifications_for(db_session, parent.id)]
        assert ScheduleNotificationType.SESSION_COMPLETED in types

    async def test_complete_keeps_earlier_notes(
        self,
        db_session: AsyncSession,
        admin_actor: Actor,
        coach_actor: Actor,
        approved_session: ScheduledSession,
    ):
        monday = next_weekday(1)
        scheduler = SessionScheduler(db_session)
        await scheduler.reschedule(
            coach_actor, approved_session.id, at(monday, 14), at(monday, 15), reason="Pool closed",
        )
        await scheduler.approve(admin_actor, approved_session.id)

        completed = await scheduler.complete(coach_actor, approved_session.id, notes="Great progress")

        assert completed.notes == "Rescheduled: Pool closed\nGreat progress"

    async def test_no_show(
        self,
        db_session: AsyncSession,
        parent: User,
        coach_actor: Actor,
        approved_session: ScheduledSession,
    ):
        marked = await SessionScheduler(db_session).mark_no_show(coach_actor, approved_session.id)

        assert marked.status == ScheduledSessionStatus.NO_SHOW
        types = [n.notification_type for n in await _notifications_for(db_session, parent.id)]
        assert ScheduleNotificationType.SESSION_NO_SHOW in types

    async def test_student_cannot_complete(
        self, db_session: AsyncSession, parent_actor: Actor, approved_session: ScheduledSession,
    ):
        with pytest.raises(AuthorizationError):
            await SessionScheduler(db_session).complete(parent_actor, approved_session.id)


class TestGetSession:
    async def test_participant_reads_session(
        self, db_session: AsyncSession, parent_actor: Actor, pending_session: ScheduledSession,
    ):
        session = await SessionScheduler(db_session).get_session(parent_actor, pending_session.id)

        assert session.id == pending_session.id

    async def test_outsider_forbidden(
        self, db_session: AsyncSession, other_parent: User, pending_session: ScheduledSession,
    ):
        with pytest.raises(AuthorizationError):
            await SessionScheduler(db_session).get_session(
                actor_for(other_parent), pending_session.id,
            )

    async def test_missing(self, db_session: AsyncSession, admin_actor: Actor):
        with pytest.raises(NotFoundError):
            await SessionScheduler(db_session).get_session(admin_actor, uuid.uuid4())
