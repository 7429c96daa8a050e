"""
Welcome call availability and booking models
"""
import enum

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from ..base import Base, JSONType, TimestampMixin, new_id
from ..tenancy import TenantScopedMixin


class BookingStatus(str, enum.Enum):
    """Welcome call booking status enum"""
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class WelcomeCallAvailability(TenantScopedMixin, TimestampMixin, Base):
    """Weekly availability window for onboarding calls (one row per tenant)"""
    __tablename__ = "welcome_call_availability"

    id = Column(String(36), primary_key=True, default=new_id)
    timezone = Column(String(64), nullable=False, default="UTC")
    # 0 = Monday .. 6 = Sunday
    weekdays = Column(JSONType, nullable=False, default=lambda: [0, 1, 2, 3, 4])
    start_time = Column(String(5), nullable=False, default="09:00")
    end_time = Column(String(5), nullable=False, default="17:00")
    slot_minutes = Column(Integer, nullable=False, default=30)
    buffer_minutes = Column(Integer, nullable=False, default=15)
    min_notice_hours = Column(Integer, nullable=False, default=24)
    max_days_ahead = Column(Integer, nullable=False, default=30)

    __table_args__ = (
        UniqueConstraint("tenant_slug", name="uq_welcome_call_availability_tenant"),
    )


class WelcomeCallBooking(TenantScopedMixin, TimestampMixin, Base):
    """A booked onboarding call (UTC times)"""
    __tablename__ = "welcome_call_bookings"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(100), nullable=False, index=True)
    creator_name = Column(String(200), nullable=True)
    starts_at = Column(DateTime, nullable=False, index=True)
    ends_at = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.SCHEDULED.value, index=True)
    notes = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
