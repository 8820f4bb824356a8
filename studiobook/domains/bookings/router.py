"""Booking endpoints: availability, create, cancel and the admin views."""
import datetime
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.config.database import get_db
from studiobook.domains.auth.dependencies import AdminCaller, CurrentCaller

from .schemas import (
    AvailableSlotsResponse,
    BookingCreate,
    BookingReschedule,
    BookingResponse,
    CancelResponse,
)
from .service import BookingService

logger = structlog.get_logger(__name__)

router = APIRouter()
admin_router = APIRouter()


async def get_booking_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingService:
    return BookingService(db)


BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def list_available_slots(
    caller: CurrentCaller,
    service: BookingServiceDep,
    day: Annotated[datetime.date, Query(alias="date")],
    package_id: Annotated[UUID | None, Query()] = None,
) -> AvailableSlotsResponse:
    """List the open slots of a day for the caller.

    Pass ``package_id`` to check against the package's real sharing mode;
    without it the strictest rules apply.
    """
    slots = await service.availability.list_available_slots(day, caller.role, package_id)
    return AvailableSlotsResponse(date=day, slots=slots)


@router.get("/bookings", response_model=list[BookingResponse])
async def list_bookings(
    caller: CurrentCaller,
    service: BookingServiceDep,
) -> list[BookingResponse]:
    """List CONFIRMED bookings visible to the caller.

    Clients see their own bookings plus those of their shared-package
    partners; admins see every booking.
    """
    if caller.is_admin:
        bookings = await service.list_bookings_between()
    else:
        bookings = await service.list_bookings_for_user(caller.user_id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    caller: CurrentCaller,
    service: BookingServiceDep,
) -> BookingResponse:
    """Book a session on one of the caller's packages."""
    booking = await service.create_booking(
        user_id=caller.user_id,
        package_id=request.package_id,
        day=request.date,
        time_str=request.time,
        acting_role=caller.role,
        on_behalf_of=request.user_id,
    )
    return BookingResponse.model_validate(booking)


@router.delete("/bookings/{booking_id}", response_model=CancelResponse)
async def cancel_booking(
    booking_id: UUID,
    caller: CurrentCaller,
    service: BookingServiceDep,
) -> CancelResponse:
    """Cancel a booking and return its session to the package."""
    await service.cancel_booking(booking_id, caller.user_id, caller.role)
    return CancelResponse(success=True)


# Admin


@admin_router.get("/bookings", response_model=list[BookingResponse])
async def admin_list_bookings(
    caller: AdminCaller,
    service: BookingServiceDep,
    start_date: Annotated[datetime.date | None, Query()] = None,
    end_date: Annotated[datetime.date | None, Query()] = None,
) -> list[BookingResponse]:
    """List CONFIRMED bookings between two days, inclusive."""
    bookings = await service.list_bookings_between(start_date, end_date)
    return [BookingResponse.model_validate(b) for b in bookings]


@admin_router.put("/bookings/{booking_id}", response_model=BookingResponse)
async def admin_reschedule_booking(
    booking_id: UUID,
    request: BookingReschedule,
    caller: AdminCaller,
    service: BookingServiceDep,
) -> BookingResponse:
    """Move a booking to another day, time or length."""
    booking = await service.reschedule_booking(
        booking_id,
        caller.role,
        new_date=request.date,
        new_time=request.time,
        new_duration=request.duration_minutes,
    )
    logger.info("admin_booking_updated", booking_id=str(booking_id), admin_id=str(caller.user_id))
    return BookingResponse.model_validate(booking)
