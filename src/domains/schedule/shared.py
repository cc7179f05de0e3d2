"""Shared helpers for schedule sub-routers."""
from sqlalchemy import inspect

from .availability_service import AvailabilityView, DailySlot
from .conflicts import AvailableSlot
from .models import CoachAvailability, ScheduledSession, TimeSlot
from .schemas import (
    AvailabilityResponse,
    AvailableSlotResponse,
    CoachAvailabilityResponse,
    DailySlotResponse,
    ScheduledSessionResponse,
    TimeSlotResponse,
)


def _loaded(instance, attribute: str):
    """Relationship value if already loaded, else None (no lazy IO)."""
    if attribute in inspect(instance).unloaded:
        return None
    return getattr(instance, attribute)


def _session_to_response(session: ScheduledSession) -> ScheduledSessionResponse:
    """Convert session model to response."""
    coach = _loaded(session, "coach")
    student = _loaded(session, "student")
    response = ScheduledSessionResponse.model_validate(session)
    response.coach_name = coach.full_name if coach else None
    response.student_name = student.full_name if student else None
    return response


def _slot_to_response(slot: TimeSlot) -> TimeSlotResponse:
    return TimeSlotResponse.model_validate(slot)


def _availability_to_response(availability: CoachAvailability) -> AvailabilityResponse:
    coach = _loaded(availability, "coach")
    slots = _loaded(availability, "time_slots") or []
    return AvailabilityResponse(
        id=availability.id,
        coach_id=availability.coach_id,
        day_of_week=availability.day_of_week,
        is_active=availability.is_active,
        approval_status=availability.approval_status,
        admin_notes=availability.admin_notes,
        rejection_reason=availability.rejection_reason,
        reviewed_at=availability.reviewed_at,
        reviewed_by=availability.reviewed_by,
        created_at=availability.created_at,
        updated_at=availability.updated_at,
        time_slots=[_slot_to_response(s) for s in slots],
        coach_name=coach.full_name if coach else None,
        coach_email=coach.email if coach else None,
    )


def _daily_slot_to_response(daily: DailySlot) -> DailySlotResponse:
    return DailySlotResponse(
        **_slot_to_response(daily.slot).model_dump(),
        starts_at=daily.starts_at,
        ends_at=daily.ends_at,
        remaining_capacity=daily.remaining_capacity,
        is_bookable=daily.is_bookable,
        sessions=[_session_to_response(s) for s in daily.sessions],
    )


def _view_to_response(view: AvailabilityView) -> CoachAvailabilityResponse:
    return CoachAvailabilityResponse(
        coach_id=view.coach_id,
        availability=[_availability_to_response(a) for a in view.availability],
        date=view.on_date,
        day_of_week=view.day_of_week,
        slots=[_daily_slot_to_response(d) for d in view.slots],
    )


def _available_slot_to_response(available: AvailableSlot) -> AvailableSlotResponse:
    return AvailableSlotResponse(
        **_slot_to_response(available.slot).model_dump(),
        coach_id=available.coach_id,
        starts_at=available.starts_at,
        ends_at=available.ends_at,
        remaining_capacity=available.remaining_capacity,
    )
