"""Schedule schemas for API validation."""
from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.core.pagination import PageMeta, SortOrder

from .models import ApprovalStatus, ScheduledSessionStatus, SessionType

HHMM = r"^\d{1,2}:\d{2}$"


# ==================== Availability ====================


class TimeSlotInput(BaseModel):
    """Single bookable slot inside an availability day."""

    start_time: str = Field(pattern=HHMM)  # HH:MM
    end_time: str = Field(pattern=HHMM)  # HH:MM
    is_available: bool = True
    max_bookings: int = Field(default=1, ge=1)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    session_type: SessionType = SessionType.ONE_ON_ONE


class AvailabilityDayInput(BaseModel):
    """Template for one day of the week."""

    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday, 6=Saturday
    is_active: bool = True
    time_slots: list[TimeSlotInput] = []


class SetAvailabilityRequest(BaseModel):
    """Replace the listed days of a coach's weekly availability."""

    availability: list[AvailabilityDayInput] = Field(min_length=1, max_length=7)


class AvailabilityApproveRequest(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=2000)


class AvailabilityRejectRequest(BaseModel):
    rejection_reason: str = Field(min_length=1, max_length=2000)
    admin_notes: str | None = Field(default=None, max_length=2000)


class TimeSlotResponse(BaseModel):
    """Schema for time slot response."""

    id: UUID
    availability_id: UUID
    start_time: str
    end_time: str
    is_available: bool
    max_bookings: int
    current_bookings: int
    price: Decimal
    session_type: SessionType

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResponse(BaseModel):
    """Schema for one availability day."""

    id: UUID
    coach_id: UUID
    day_of_week: int
    is_active: bool
    approval_status: ApprovalStatus
    admin_notes: str | None = None
    rejection_reason: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    created_at: datetime
    updated_at: datetime | None = None
    time_slots: list[TimeSlotResponse] = []

    # Enriched fields
    coach_name: str | None = None
    coach_email: str | None = None

    model_config = ConfigDict(from_attributes=True)


class AvailabilityListResponse(BaseModel):
    availabilities: list[AvailabilityResponse]
    pagination: PageMeta


# ==================== Sessions ====================


class BookSessionRequest(BaseModel):
    """Book a single session against a time slot."""

    time_slot_id: UUID
    session_date: date
    student_id: UUID | None = None  # defaults to the caller
    course_id: UUID | None = None
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    duration: int | None = Field(default=None, ge=15, le=480)  # minutes
    notes: str | None = Field(default=None, max_length=2000)
    meeting_url: str | None = Field(default=None, max_length=500)


class BulkBookingEntry(BaseModel):
    """One entry of a bulk booking."""

    time_slot_id: UUID
    session_date: date
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    duration: int | None = Field(default=None, ge=15, le=480)
    notes: str | None = Field(default=None, max_length=2000)


class BulkBookSessionRequest(BaseModel):
    """Book several sessions for one student, all or nothing."""

    student_id: UUID | None = None
    course_id: UUID | None = None
    sessions: list[BulkBookingEntry] = Field(min_length=1, max_length=10)


class ApproveSessionRequest(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=2000)


class RejectSessionRequest(BaseModel):
    rejection_reason: str = Field(min_length=1, max_length=2000)
    admin_notes: str | None = Field(default=None, max_length=2000)


class RescheduleSessionRequest(BaseModel):
    """Move a session to a new interval."""

    new_start: datetime
    new_end: datetime
    reason: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def check_order(self) -> "RescheduleSessionRequest":
        if self.new_end <= self.new_start:
            raise ValueError("new_end must be after new_start")
        return self


class CancelSessionRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class CompleteSessionRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class ScheduledSessionResponse(BaseModel):
    """Schema for scheduled session response."""

    id: UUID
    time_slot_id: UUID | None
    coach_id: UUID
    student_id: UUID
    course_id: UUID | None
    session_date: datetime
    ends_at: datetime
    duration: int
    title: str
    description: str | None
    session_type: SessionType
    status: ScheduledSessionStatus
    price: Decimal
    meeting_url: str | None
    notes: str | None
    admin_notes: str | None
    rejection_reason: str | None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    # Enriched fields
    coach_name: str | None = None
    student_name: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SessionListResponse(BaseModel):
    sessions: list[ScheduledSessionResponse]
    pagination: PageMeta


class BulkBookingResponse(BaseModel):
    sessions: list[ScheduledSessionResponse]
    count: int


class UpcomingSessionsResponse(BaseModel):
    sessions: list[ScheduledSessionResponse]
    total_count: int


class CalendarResponse(BaseModel):
    user_id: UUID
    start_date: date
    end_date: date
    sessions: list[ScheduledSessionResponse]


# ==================== Slots & conflicts ====================


class DailySlotResponse(TimeSlotResponse):
    """A slot expanded onto a concrete date, with its occupancy."""

    starts_at: datetime
    ends_at: datetime
    remaining_capacity: int
    is_bookable: bool
    sessions: list[ScheduledSessionResponse] = []


class CoachAvailabilityResponse(BaseModel):
    """Weekly template, optionally expanded for one date."""

    coach_id: UUID
    availability: list[AvailabilityResponse]
    on_date: date | None = Field(default=None, alias="date")
    day_of_week: int | None = None
    slots: list[DailySlotResponse] = []

    model_config = ConfigDict(populate_by_name=True)


class AvailableSlotResponse(TimeSlotResponse):
    """A slot that can still be booked on the requested date."""

    coach_id: UUID
    starts_at: datetime
    ends_at: datetime
    remaining_capacity: int


class AvailableSlotsResponse(BaseModel):
    coach_id: UUID
    on_date: date = Field(alias="date")
    session_type: SessionType
    slots: list[AvailableSlotResponse]

    model_config = ConfigDict(populate_by_name=True)


class ConflictCheckResponse(BaseModel):
    """Response from conflict check endpoint."""

    has_conflicts: bool
    conflicts: list[ScheduledSessionResponse] = []


# ==================== Listing filters ====================

SessionSortField = Literal["session_date", "created_at", "status", "price", "duration"]
AvailabilitySortField = Literal["day_of_week", "created_at", "updated_at", "approval_status"]


class SessionListFilters(BaseModel):
    """Conjunctive filters for session listing."""

    status: ScheduledSessionStatus | None = None
    coach_id: UUID | None = None
    student_id: UUID | None = None
    course_id: UUID | None = None
    session_type: SessionType | None = None
    start_date: date | None = None
    end_date: date | None = None
    search: str | None = Field(default=None, max_length=100)
    sort_by: SessionSortField = "session_date"
    sort_order: SortOrder = SortOrder.ASC


class AvailabilityListFilters(BaseModel):
    """Conjunctive filters for the admin availability listing."""

    coach_id: UUID | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    status: Literal["all", "active", "inactive"] = "all"
    approval_status: ApprovalStatus | None = None
    search: str | None = Field(default=None, max_length=100)
    sort_by: AvailabilitySortField = "day_of_week"
    sort_order: SortOrder = SortOrder.ASC
