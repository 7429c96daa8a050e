"""
Tax form (1099) models
"""
import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from ..base import Base, JSONType, TimestampMixin, new_id
from ..tenancy import TenantScopedMixin


class TaxFormStatus(str, enum.Enum):
    """Tax form status enum"""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    FILED = "filed"
    DELIVERED = "delivered"
    VOIDED = "voided"


class TaxFormType(str, enum.Enum):
    NEC = "1099-NEC"
    MISC = "1099-MISC"
    K = "1099-K"


class PayeeType(str, enum.Enum):
    CREATOR = "creator"
    CONTRACTOR = "contractor"
    VENDOR = "vendor"


class CorrectionType(str, enum.Enum):
    AMOUNT = "amount"
    INFO = "info"


class TaxForm(TenantScopedMixin, TimestampMixin, Base):
    """Year-end information return for a payee"""
    __tablename__ = "tax_forms"

    id = Column(String(36), primary_key=True, default=new_id)
    payee_id = Column(String(100), nullable=False)
    payee_type = Column(String(20), nullable=False)
    tax_year = Column(Integer, nullable=False, index=True)
    form_type = Column(String(20), nullable=False)

    recipient_name = Column(String(200), nullable=False)
    recipient_tin_last_four = Column(String(4), nullable=True)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    box_amounts = Column(JSONType, nullable=True)

    status = Column(String(20), nullable=False, default=TaxFormStatus.DRAFT.value, index=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    filed_at = Column(DateTime, nullable=True)
    confirmation_number = Column(String(100), nullable=True)
    delivery_method = Column(String(20), nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    void_reason = Column(String(500), nullable=True)

    # Corrections point at the form they replace
    original_form_id = Column(String(36), ForeignKey("tax_forms.id"), nullable=True)
    correction_type = Column(String(20), nullable=True)

    created_by = Column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_tax_forms_payee_year", "payee_id", "payee_type", "tax_year"),
    )
