"""
Treasury draw request model
"""
import enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from ..base import Base, TimestampMixin, new_id
from ..tenancy import TenantScopedMixin


class DrawRequestStatus(str, enum.Enum):
    """Draw request status enum"""
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"


class DrawRequest(TenantScopedMixin, TimestampMixin, Base):
    """Request to move funds out of the tenant treasury"""
    __tablename__ = "draw_requests"

    id = Column(String(36), primary_key=True, default=new_id)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    reason = Column(Text, nullable=True)
    requested_by = Column(String(100), nullable=False)
    requester_name = Column(String(200), nullable=True)
    destination_account_id = Column(String(100), nullable=True)
    auto_send = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default=DrawRequestStatus.PENDING.value, index=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True, index=True)
    rejected_by = Column(String(100), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_reason = Column(Text, nullable=True)

    processed_at = Column(DateTime, nullable=True)
    transfer_reference = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
