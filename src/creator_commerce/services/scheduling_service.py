"""
Welcome Call Scheduling Service
Slot generation from a weekly availability window and booking of onboarding calls
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ..db import to_utc_naive, utcnow
from ..db.models import BookingStatus, WelcomeCallAvailability, WelcomeCallBooking
from ..exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from .audit_log_service import SYSTEM_ACTOR, Actor, AuditAction, AuditLogService

logger = logging.getLogger(__name__)

DEFAULT_AVAILABILITY = {
    "timezone": "UTC",
    "weekdays": [0, 1, 2, 3, 4],
    "start_time": "09:00",
    "end_time": "17:00",
    "slot_minutes": 30,
    "buffer_minutes": 15,
    "min_notice_hours": 24,
    "max_days_ahead": 30,
}


def _parse_hhmm(value: str) -> time:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (ValueError, AttributeError):
        raise ValidationFailedError(f"Invalid time '{value}', expected HH:MM")


def _load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationFailedError(f"Unknown timezone '{name}'")


def _isoformat_utc(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat()


def generate_slots(
    day: date,
    availability: Any,
    bookings: Iterable[Any],
    now: datetime,
) -> List[Dict[str, str]]:
    """
    Free call slots on one local calendar day

    Args:
        day: Day in the availability's timezone
        availability: Object with timezone, weekdays, start_time, end_time,
            slot_minutes, buffer_minutes, min_notice_hours and max_days_ahead
        bookings: Existing bookings (starts_at/ends_at naive UTC, status)
        now: Current time, naive UTC

    Returns:
        Ascending list of {"start", "end"} ISO-8601 UTC strings
    """
    if day.weekday() not in (availability.weekdays or []):
        return []

    zone = _load_zone(availability.timezone)
    local_today = now.replace(tzinfo=timezone.utc).astimezone(zone).date()
    if day > local_today + timedelta(days=availability.max_days_ahead):
        return []

    window_start = datetime.combine(day, _parse_hhmm(availability.start_time), tzinfo=zone)
    window_end = datetime.combine(day, _parse_hhmm(availability.end_time), tzinfo=zone)
    slot = timedelta(minutes=availability.slot_minutes)
    buffer = timedelta(minutes=availability.buffer_minutes)
    earliest = now + timedelta(hours=availability.min_notice_hours)

    busy = [
        (b.starts_at - buffer, b.ends_at + buffer)
        for b in bookings
        if b.status != BookingStatus.CANCELLED.value
    ]

    slots = []
    cursor = window_start
    while cursor + slot <= window_end:
        start = to_utc_naive(cursor)
        end = to_utc_naive(cursor + slot)
        cursor += slot

        if start < earliest:
            continue
        # half-open intervals: touching a padded booking is allowed
        if any(start < busy_end and busy_start < end for busy_start, busy_end in busy):
            continue
        slots.append({"start": _isoformat_utc(start), "end": _isoformat_utc(end)})

    return slots


class SchedulingService:
    """Service for welcome call availability and bookings"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogService(db)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def get_availability(self) -> WelcomeCallAvailability:
        availability = self.db.query(WelcomeCallAvailability).first()
        if availability is None:
            availability = WelcomeCallAvailability(**DEFAULT_AVAILABILITY)
        return availability

    def update_availability(self, updates: Dict[str, Any]) -> WelcomeCallAvailability:
        unknown = set(updates) - set(DEFAULT_AVAILABILITY)
        if unknown:
            raise ValidationFailedError(f"Unknown availability fields: {', '.join(sorted(unknown))}")

        current = self.get_availability()
        merged = {key: getattr(current, key) for key in DEFAULT_AVAILABILITY}
        merged.update({k: v for k, v in updates.items() if v is not None})

        _load_zone(merged["timezone"])
        if _parse_hhmm(merged["start_time"]) >= _parse_hhmm(merged["end_time"]):
            raise ValidationFailedError("start_time must be before end_time")
        weekdays = merged["weekdays"]
        if not weekdays or any(not isinstance(d, int) or d < 0 or d > 6 for d in weekdays):
            raise ValidationFailedError("weekdays must be a non-empty list of integers 0 (Mon) to 6 (Sun)")
        merged["weekdays"] = sorted(set(weekdays))
        if merged["slot_minutes"] < 5:
            raise ValidationFailedError("slot_minutes must be at least 5")
        for field in ("buffer_minutes", "min_notice_hours"):
            if merged[field] < 0:
                raise ValidationFailedError(f"{field} cannot be negative")
        if merged["max_days_ahead"] < 1:
            raise ValidationFailedError("max_days_ahead must be at least 1")

        availability = self.db.query(WelcomeCallAvailability).first()
        if availability is None:
            availability = WelcomeCallAvailability()
            self.db.add(availability)
        for key, value in merged.items():
            setattr(availability, key, value)

        self.db.commit()
        self.db.refresh(availability)
        logger.info("Welcome call availability updated")
        return availability

    # ------------------------------------------------------------------
    # Slots and bookings
    # ------------------------------------------------------------------

    def _bookings_between(self, start: datetime, end: datetime) -> List[WelcomeCallBooking]:
        return (
            self.db.query(WelcomeCallBooking)
            .filter(
                WelcomeCallBooking.status != BookingStatus.CANCELLED.value,
                WelcomeCallBooking.starts_at < end,
                WelcomeCallBooking.ends_at > start,
            )
            .all()
        )

    def get_available_slots(self, day: date, now: Optional[datetime] = None) -> List[Dict[str, str]]:
        availability = self.get_availability()
        now = now or utcnow()
        # a local day spans at most 26 hours of UTC; pad generously for buffers
        window_start = datetime.combine(day, time.min) - timedelta(days=1)
        window_end = datetime.combine(day, time.min) + timedelta(days=2)
        bookings = self._bookings_between(window_start, window_end)
        return generate_slots(day, availability, bookings, now)

    def get_booking(self, booking_id: str) -> WelcomeCallBooking:
        booking = self.db.query(WelcomeCallBooking).filter(WelcomeCallBooking.id == booking_id).first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def list_bookings(
        self,
        status: Optional[str] = None,
        creator_id: Optional[str] = None,
        upcoming_only: bool = False,
    ) -> List[WelcomeCallBooking]:
        query = self.db.query(WelcomeCallBooking)
        if status:
            query = query.filter(WelcomeCallBooking.status == status)
        if creator_id:
            query = query.filter(WelcomeCallBooking.creator_id == creator_id)
        if upcoming_only:
            query = query.filter(WelcomeCallBooking.starts_at > utcnow())
        return query.order_by(WelcomeCallBooking.starts_at.asc()).all()

    def book_slot(
        self,
        creator_id: str,
        start: datetime,
        creator_name: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> WelcomeCallBooking:
        """Book one of the currently available slots for a creator"""
        now = now or utcnow()
        start = to_utc_naive(start)

        existing = (
            self.db.query(WelcomeCallBooking)
            .filter(
                WelcomeCallBooking.creator_id == creator_id,
                WelcomeCallBooking.status == BookingStatus.SCHEDULED.value,
                WelcomeCallBooking.starts_at > now,
            )
            .first()
        )
        if existing:
            raise ConflictError(
                "Creator already has an upcoming welcome call",
                details={"booking_id": existing.id},
            )

        availability = self.get_availability()
        zone = _load_zone(availability.timezone)
        local_day = start.replace(tzinfo=timezone.utc).astimezone(zone).date()
        requested = _isoformat_utc(start)
        slots = self.get_available_slots(local_day, now=now)
        if not any(slot["start"] == requested for slot in slots):
            raise ConflictError("Requested time is no longer available", details={"start": requested})

        booking = WelcomeCallBooking(
            creator_id=creator_id,
            creator_name=creator_name,
            starts_at=start,
            ends_at=start + timedelta(minutes=availability.slot_minutes),
            status=BookingStatus.SCHEDULED.value,
            notes=notes,
        )
        self.db.add(booking)
        self.db.flush()
        self.audit.log(
            entity_type="welcome_call",
            entity_id=booking.id,
            action=AuditAction.WELCOME_CALL_BOOKED,
            actor=actor,
            details={"starts_at": requested},
        )
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"Welcome call {booking.id} booked for creator {creator_id} at {requested}")
        return booking

    def cancel_booking(
        self, booking_id: str, creator_id: Optional[str] = None, actor: Actor = SYSTEM_ACTOR
    ) -> WelcomeCallBooking:
        booking = self.get_booking(booking_id)
        if creator_id is not None and booking.creator_id != creator_id:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.SCHEDULED.value:
            raise InvalidStateError("welcome call", booking.status, "cancel")

        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = utcnow()
        self.audit.log(
            entity_type="welcome_call",
            entity_id=booking.id,
            action=AuditAction.WELCOME_CALL_CANCELLED,
            actor=actor,
        )
        self.db.commit()
        self.db.refresh(booking)
        return booking

    def complete_booking(self, booking_id: str, notes: Optional[str] = None, actor: Actor = SYSTEM_ACTOR) -> WelcomeCallBooking:
        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.SCHEDULED.value:
            raise InvalidStateError("welcome call", booking.status, "complete")

        booking.status = BookingStatus.COMPLETED.value
        booking.completed_at = utcnow()
        if notes:
            booking.notes = notes
        self.audit.log(
            entity_type="welcome_call",
            entity_id=booking.id,
            action=AuditAction.WELCOME_CALL_COMPLETED,
            actor=actor,
        )
        self.db.commit()
        self.db.refresh(booking)
        return booking
