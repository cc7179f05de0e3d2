"""Session booking and lifecycle endpoints."""
from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, PaginationParams, SortOrder
from src.domains.auth.dependencies import CurrentActor

from . import queries
from .models import ScheduledSessionStatus, SessionType
from .scheduler_service import SessionScheduler
from .schemas import (
    ApproveSessionRequest,
    BookSessionRequest,
    BulkBookingResponse,
    BulkBookSessionRequest,
    CancelSessionRequest,
    CompleteSessionRequest,
    RejectSessionRequest,
    RescheduleSessionRequest,
    ScheduledSessionResponse,
    SessionListFilters,
    SessionListResponse,
    SessionSortField,
    UpcomingSessionsResponse,
)
from .shared import _session_to_response

sessions_router = APIRouter(prefix="/sessions")


# ==================== Booking ====================

@sessions_router.post("", response_model=ScheduledSessionResponse, status_code=status.HTTP_201_CREATED)
async def book_session(
    request: BookSessionRequest,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledSessionResponse:
    """Book a session into a coach's time slot (pending admin approval)."""
    session = await SessionScheduler(db).book_session(current_actor, request)
    return _session_to_response(session)


@sessions_router.post("/bulk", response_model=BulkBookingResponse, status_code=status.HTTP_201_CREATED)
async def bulk_book_sessions(
    request: BulkBookSessionRequest,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BulkBookingResponse:
    """Book up to 10 sessions at once; nothing is booked if any entry fails."""
    sessions = await SessionScheduler(db).bulk_book_sessions(current_actor, request)
    return BulkBookingResponse(
        sessions=[_session_to_response(s) for s in sessions],
        count=len(sessions),
    )


# ==================== Listing ====================

@sessions_router.get("", response_model=SessionListResponse)
async def list_scheduled_sessions(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
    status_filter: Annotated[ScheduledSessionStatus | None, Query(alias="status")] = None,
    coach_id: Annotated[UUID | None, Query()] = None,
    student_id: Annotated[UUID | None, Query()] = None,
    course_id: Annotated[UUID | None, Query()] = None,
    session_type: Annotated[SessionType | None, Query()] = None,
    start_date: Annotated[date | None, Query()] = None,
    end_date: Annotated[date | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    sort_by: Annotated[SessionSortField, Query()] = "session_date",
    sort_order: Annotated[SortOrder, Query()] = SortOrder.ASC,
) -> SessionListResponse:
    """List sessions visible to the caller."""
    filters = SessionListFilters(
        status=status_filter,
        coach_id=coach_id,
        student_id=student_id,
        course_id=course_id,
        session_type=session_type,
        start_date=start_date,
        end_date=end_date,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = await queries.list_scheduled_sessions(
        db, current_actor, filters, PaginationParams(page=page, limit=limit),
    )
    return SessionListResponse(
        sessions=[_session_to_response(s) for s in result.items],
        pagination=result.meta,
    )


@sessions_router.get("/upcoming", response_model=UpcomingSessionsResponse)
async def list_upcoming_sessions(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> UpcomingSessionsResponse:
    """The caller's next pending or approved sessions."""
    sessions = await queries.list_upcoming(db, current_actor, limit)
    return UpcomingSessionsResponse(
        sessions=[_session_to_response(s) for s in sessions],
        total_count=len(sessions),
    )


@sessions_router.get("/{session_id}", response_model=ScheduledSessionResponse)
async def get_session(
    session_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledSessionResponse:
    session = await SessionScheduler(db).get_session(current_actor, session_id)
    return _session_to_response(session)


# ==================== Transitions ====================

@sessions_router.post("/{session_id}/approve", response_model=ScheduledSessionResponse)
async def approve_session(
    session_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    request: ApproveSessionRequest | None = None,
) -> ScheduledSessionResponse:
    """Approve a pending session (admin only)."""
    admin_notes = request.admin_notes if request else None
    session = await SessionScheduler(db).approve(current_actor, session_id, admin_notes)
    return _session_to_response(session)


@sessions_router.post("/{session_id}/reject", response_model=ScheduledSessionResponse)
async def reject_session(
    session_id: UUID,
    request: RejectSessionRequest,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledSessionResponse:
    """Reject a pending session (admin only). Frees the slot."""
    session = await SessionScheduler(db).reject(
        current_actor, session_id, request.rejection_reason, request.admin_notes,
    )
    return _session_to_response(session)


@sessions_router.post("/{session_id}/reschedule", response_model=ScheduledSessionResponse)
async def reschedule_session(
    session_id: UUID,
    request: RescheduleSessionRequest,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledSessionResponse:
    """Move a session; approved sessions go back to pending approval."""
    session = await SessionScheduler(db).reschedule(
        current_actor, session_id, request.new_start, request.new_end, request.reason,
    )
    return _session_to_response(session)


@sessions_router.post("/{session_id}/cancel", response_model=ScheduledSessionResponse)
async def cancel_session(
    session_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    request: CancelSessionRequest | None = None,
) -> ScheduledSessionResponse:
    reason = request.reason if request else None
    session = await SessionScheduler(db).cancel(current_actor, session_id, reason)
    return _session_to_response(session)


@sessions_router.post("/{session_id}/complete", response_model=ScheduledSessionResponse)
async def complete_session(
    session_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    request: CompleteSessionRequest | None = None,
) -> ScheduledSessionResponse:
    notes = request.notes if request else None
    session = await SessionScheduler(db).complete(current_actor, session_id, notes)
    return _session_to_response(session)


@sessions_router.post("/{session_id}/no-show", response_model=ScheduledSessionResponse)
async def mark_no_show(
    session_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ScheduledSessionResponse:
    session = await SessionScheduler(db).mark_no_show(current_actor, session_id)
    return _session_to_response(session)
