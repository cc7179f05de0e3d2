"""Coach availability, open slots, conflict checks and calendars."""
from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentActor
from src.domains.auth.guards import Actor, can_manage_availability, ensure_allowed

from . import queries
from .availability_service import AvailabilityRegistry
from .conflicts import ConflictDetector
from .models import SessionType
from .schemas import (
    AvailabilityResponse,
    AvailableSlotsResponse,
    CalendarResponse,
    CoachAvailabilityResponse,
    ConflictCheckResponse,
    SetAvailabilityRequest,
)
from .shared import (
    _availability_to_response,
    _available_slot_to_response,
    _session_to_response,
    _view_to_response,
)
from .timeutils import to_wall_clock

availability_router = APIRouter()


# ==================== Availability ====================

@availability_router.post(
    "/coaches/{coach_id}",
    response_model=list[AvailabilityResponse],
    status_code=status.HTTP_201_CREATED,
)
async def set_coach_availability(
    coach_id: UUID,
    request: SetAvailabilityRequest,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[AvailabilityResponse]:
    """Replace the given days of a coach's weekly availability."""
    availability = await AvailabilityRegistry(db).set_availability(current_actor, coach_id, request)
    return [_availability_to_response(a) for a in availability]


@availability_router.get("/coaches/{coach_id}", response_model=CoachAvailabilityResponse)
async def get_coach_availability(
    coach_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    on: Annotated[date | None, Query(alias="date")] = None,
) -> CoachAvailabilityResponse:
    """Weekly template; with ``date``, slot occupancy for that day."""
    view = await AvailabilityRegistry(db).get_availability(current_actor, coach_id, on)
    return _view_to_response(view)


# ==================== Slots & conflicts ====================

@availability_router.get("/time-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    coach_id: Annotated[UUID, Query()],
    on: Annotated[date, Query(alias="date")],
    session_type: Annotated[SessionType, Query()] = SessionType.ONE_ON_ONE,
) -> AvailableSlotsResponse:
    """Slots of a coach that can still be booked on a date."""
    slots = await ConflictDetector(db).get_available_slots(coach_id, on, session_type)
    return AvailableSlotsResponse(
        coach_id=coach_id,
        date=on,
        session_type=session_type,
        slots=[_available_slot_to_response(s) for s in slots],
    )


@availability_router.get("/conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    coach_id: Annotated[UUID, Query()],
    start_time: Annotated[datetime, Query()],
    end_time: Annotated[datetime, Query()],
    exclude_session_id: Annotated[UUID | None, Query()] = None,
) -> ConflictCheckResponse:
    """Check a candidate interval against the coach's sessions."""
    _ensure_can_inspect_coach(current_actor, coach_id)
    conflicts = await ConflictDetector(db).find_conflicts(
        coach_id,
        to_wall_clock(start_time),
        to_wall_clock(end_time),
        exclude_session_id=exclude_session_id,
    )
    return ConflictCheckResponse(
        has_conflicts=bool(conflicts),
        conflicts=[_session_to_response(s) for s in conflicts],
    )


# ==================== Calendar ====================

@availability_router.get("/calendar/{user_id}", response_model=CalendarResponse)
async def get_user_calendar(
    user_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    start_date: Annotated[date, Query()],
    end_date: Annotated[date, Query()],
) -> CalendarResponse:
    """Sessions where the user is coach or student, inclusive by day."""
    sessions = await queries.get_user_calendar(db, current_actor, user_id, start_date, end_date)
    return CalendarResponse(
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        sessions=[_session_to_response(s) for s in sessions],
    )


def _ensure_can_inspect_coach(actor: Actor, coach_id: UUID) -> None:
    # Parents book against open slots; conflict details stay with the coach and admins
    ensure_allowed(can_manage_availability(actor, coach_id))
