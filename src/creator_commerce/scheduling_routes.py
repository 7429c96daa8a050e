"""
Welcome call routes: admin availability/bookings and creator self-booking
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import actor_from, get_tenant_db
from .services.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/scheduling", tags=["scheduling"])
creator_router = APIRouter(prefix="/api/creator/welcome-call", tags=["creator"])

require_admin = require_role(Role.ADMIN)
require_creator = require_role(Role.CREATOR)


class AvailabilityRequest(BaseModel):
    timezone: Optional[str] = None
    weekdays: Optional[List[int]] = None
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    slot_minutes: Optional[int] = Field(None, ge=5, le=240)
    buffer_minutes: Optional[int] = Field(None, ge=0, le=240)
    min_notice_hours: Optional[int] = Field(None, ge=0)
    max_days_ahead: Optional[int] = Field(None, ge=1, le=365)


class AvailabilityResponse(BaseModel):
    timezone: str
    weekdays: List[int]
    start_time: str
    end_time: str
    slot_minutes: int
    buffer_minutes: int
    min_notice_hours: int
    max_days_ahead: int

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start: str
    end: str


class BookRequest(BaseModel):
    start: datetime
    notes: Optional[str] = Field(None, max_length=2000)


class CompleteRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class BookingResponse(BaseModel):
    id: str
    creator_id: str
    creator_name: Optional[str]
    starts_at: datetime
    ends_at: datetime
    status: str
    notes: Optional[str]
    cancelled_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------

@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).get_availability()


@router.put("/availability", response_model=AvailabilityResponse)
async def update_availability(
    request: AvailabilityRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).update_availability(request.model_dump(exclude_none=True))


@router.get("/slots", response_model=List[SlotResponse])
async def admin_available_slots(
    day: date,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).get_available_slots(day)


@router.get("/bookings", response_model=List[BookingResponse])
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    creator_id: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).list_bookings(status=status_filter, creator_id=creator_id)


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str,
    request: CompleteRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).complete_booking(booking_id, notes=request.notes, actor=actor_from(principal))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def admin_cancel_booking(
    booking_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).cancel_booking(booking_id, actor=actor_from(principal))


# ----------------------------------------------------------------------
# Creator
# ----------------------------------------------------------------------

@creator_router.get("/slots", response_model=List[SlotResponse])
async def available_slots(
    day: date,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).get_available_slots(day)


@creator_router.get("", response_model=List[BookingResponse])
async def my_bookings(
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).list_bookings(creator_id=principal.id)


@creator_router.post("/book", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_welcome_call(
    request: BookRequest,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).book_slot(
        principal.id,
        request.start,
        creator_name=principal.name,
        notes=request.notes,
        actor=actor_from(principal),
    )


@creator_router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_my_booking(
    booking_id: str,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return SchedulingService(db).cancel_booking(booking_id, creator_id=principal.id, actor=actor_from(principal))
