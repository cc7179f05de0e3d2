"""Read-side queries: filtered, sorted and paginated listings."""
import uuid
from datetime import date, datetime, timedelta

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from src.core.exceptions import ValidationError
from src.core.pagination import Page, PageMeta, PaginationParams, SortOrder
from src.domains.auth.guards import Actor, can_view_user, ensure_allowed, require_admin
from src.domains.users.models import User

from .models import ACTIVE_SESSION_STATUSES, CoachAvailability, ScheduledSession
from .schemas import AvailabilityListFilters, SessionListFilters
from .timeutils import schedule_now

SESSION_SORT_COLUMNS = {
    "session_date": ScheduledSession.session_date,
    "created_at": ScheduledSession.created_at,
    "status": ScheduledSession.status,
    "price": ScheduledSession.price,
    "duration": ScheduledSession.duration,
}

AVAILABILITY_SORT_COLUMNS = {
    "day_of_week": CoachAvailability.day_of_week,
    "created_at": CoachAvailability.created_at,
    "updated_at": CoachAvailability.updated_at,
    "approval_status": CoachAvailability.approval_status,
}


def _name_matches(user, term: str):
    pattern = f"%{term.strip()}%"
    return or_(
        user.first_name.ilike(pattern),
        user.last_name.ilike(pattern),
        user.email.ilike(pattern),
    )


def _ordered(query: Select, column, order: SortOrder, tiebreak) -> Select:
    primary = column.desc() if order == SortOrder.DESC else column.asc()
    return query.order_by(primary, tiebreak)


async def _paginate(db: AsyncSession, query: Select, pagination: PaginationParams) -> Page:
    total = (await db.execute(
        select(func.count()).select_from(query.order_by(None).subquery())
    )).scalar() or 0

    result = await db.execute(query.limit(pagination.limit).offset(pagination.offset))
    items = list(result.scalars().unique().all())
    return Page(items=items, meta=PageMeta.build(pagination, total))


def _visible_to(query: Select, actor: Actor) -> Select:
    if actor.is_admin:
        return query
    if actor.is_coach:
        return query.where(ScheduledSession.coach_id == actor.id)
    return query.where(ScheduledSession.student_id == actor.id)


async def list_scheduled_sessions(
    db: AsyncSession,
    actor: Actor,
    filters: SessionListFilters,
    pagination: PaginationParams,
) -> Page[ScheduledSession]:
    """Sessions visible to the actor matching every provided filter."""
    query = _visible_to(select(ScheduledSession), actor)

    if filters.status is not None:
        query = query.where(ScheduledSession.status == filters.status)
    if filters.coach_id is not None:
        query = query.where(ScheduledSession.coach_id == filters.coach_id)
    if filters.student_id is not None:
        query = query.where(ScheduledSession.student_id == filters.student_id)
    if filters.course_id is not None:
        query = query.where(ScheduledSession.course_id == filters.course_id)
    if filters.session_type is not None:
        query = query.where(ScheduledSession.session_type == filters.session_type)
    if filters.start_date is not None:
        query = query.where(
            ScheduledSession.session_date >= datetime.combine(filters.start_date, datetime.min.time())
        )
    if filters.end_date is not None:
        query = query.where(
            ScheduledSession.session_date
            < datetime.combine(filters.end_date + timedelta(days=1), datetime.min.time())
        )
    if filters.search and filters.search.strip():
        coach = aliased(User)
        student = aliased(User)
        query = (
            query
            .join(coach, ScheduledSession.coach_id == coach.id)
            .join(student, ScheduledSession.student_id == student.id)
            .where(or_(
                _name_matches(coach, filters.search),
                _name_matches(student, filters.search),
            ))
        )

    query = _ordered(
        query,
        SESSION_SORT_COLUMNS[filters.sort_by],
        filters.sort_order,
        ScheduledSession.id,
    )
    return await _paginate(db, query, pagination)


async def list_all_coach_availabilities(
    db: AsyncSession,
    actor: Actor,
    filters: AvailabilityListFilters,
    pagination: PaginationParams,
) -> Page[CoachAvailability]:
    """Admin listing of every coach's availability days."""
    ensure_allowed(require_admin(actor))

    query = select(CoachAvailability)

    if filters.coach_id is not None:
        query = query.where(CoachAvailability.coach_id == filters.coach_id)
    if filters.day_of_week is not None:
        query = query.where(CoachAvailability.day_of_week == filters.day_of_week)
    if filters.status == "active":
        query = query.where(CoachAvailability.is_active == True)  # noqa: E712
    elif filters.status == "inactive":
        query = query.where(CoachAvailability.is_active == False)  # noqa: E712
    if filters.approval_status is not None:
        query = query.where(CoachAvailability.approval_status == filters.approval_status)
    if filters.search and filters.search.strip():
        query = (
            query
            .join(User, CoachAvailability.coach_id == User.id)
            .where(_name_matches(User, filters.search))
        )

    query = _ordered(
        query,
        AVAILABILITY_SORT_COLUMNS[filters.sort_by],
        filters.sort_order,
        CoachAvailability.id,
    )
    return await _paginate(db, query, pagination)


async def get_user_calendar(
    db: AsyncSession,
    actor: Actor,
    user_id: uuid.UUID,
    start_date: date,
    end_date: date,
) -> list[ScheduledSession]:
    """Every session where the user is coach or student, inclusive by day."""
    ensure_allowed(can_view_user(actor, user_id))
    if end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    window_start = datetime.combine(start_date, datetime.min.time())
    window_end = datetime.combine(end_date + timedelta(days=1), datetime.min.time())

    result = await db.execute(
        select(ScheduledSession)
        .where(
            or_(
                ScheduledSession.coach_id == user_id,
                ScheduledSession.student_id == user_id,
            ),
            ScheduledSession.session_date >= window_start,
            ScheduledSession.session_date < window_end,
        )
        .order_by(ScheduledSession.session_date, ScheduledSession.id)
    )
    return list(result.scalars().all())


async def list_upcoming(
    db: AsyncSession,
    actor: Actor,
    limit: int = 10,
) -> list[ScheduledSession]:
    """The actor's next pending or approved sessions."""
    query = _visible_to(
        select(ScheduledSession).where(
            ScheduledSession.status.in_(ACTIVE_SESSION_STATUSES),
            ScheduledSession.session_date >= schedule_now(),
        ),
        actor,
    )
    result = await db.execute(
        query.order_by(ScheduledSession.session_date, ScheduledSession.id).limit(limit)
    )
    return list(result.scalars().all())
