"""Admin review of coach availability."""
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, PaginationParams, SortOrder
from src.domains.auth.dependencies import CurrentActor

from .availability_service import AvailabilityRegistry
from .models import ApprovalStatus
from .schemas import (
    AvailabilityApproveRequest,
    AvailabilityListFilters,
    AvailabilityListResponse,
    AvailabilityRejectRequest,
    AvailabilityResponse,
    AvailabilitySortField,
)
from .shared import _availability_to_response

admin_router = APIRouter(prefix="/admin")


@admin_router.get("/coaches", response_model=AvailabilityListResponse)
async def list_all_coach_availabilities(
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
    coach_id: Annotated[UUID | None, Query()] = None,
    day_of_week: Annotated[int | None, Query(ge=0, le=6)] = None,
    status: Annotated[Literal["all", "active", "inactive"], Query()] = "all",
    approval_status: Annotated[ApprovalStatus | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
    sort_by: Annotated[AvailabilitySortField, Query()] = "day_of_week",
    sort_order: Annotated[SortOrder, Query()] = SortOrder.ASC,
) -> AvailabilityListResponse:
    """List every coach's availability days (admin only)."""
    filters = AvailabilityListFilters(
        coach_id=coach_id,
        day_of_week=day_of_week,
        status=status,
        approval_status=approval_status,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = await AvailabilityRegistry(db).list_all(
        current_actor, filters, PaginationParams(page=page, limit=limit),
    )
    return AvailabilityListResponse(
        availabilities=[_availability_to_response(a) for a in result.items],
        pagination=result.meta,
    )


@admin_router.post("/coaches/{availability_id}/approve", response_model=AvailabilityResponse)
async def approve_coach_availability(
    availability_id: UUID,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
    request: AvailabilityApproveRequest | None = None,
) -> AvailabilityResponse:
    admin_notes = request.admin_notes if request else None
    availability = await AvailabilityRegistry(db).approve(current_actor, availability_id, admin_notes)
    return _availability_to_response(availability)


@admin_router.post("/coaches/{availability_id}/reject", response_model=AvailabilityResponse)
async def reject_coach_availability(
    availability_id: UUID,
    request: AvailabilityRejectRequest,
    current_actor: CurrentActor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AvailabilityResponse:
    availability = await AvailabilityRegistry(db).reject(
        current_actor, availability_id, request.rejection_reason, request.admin_notes,
    )
    return _availability_to_response(availability)
