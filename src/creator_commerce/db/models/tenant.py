"""
Tenant model
"""
import enum

from sqlalchemy import Column, String

from ..base import Base, TimestampMixin


class TenantStatus(str, enum.Enum):
    """Tenant status enum"""
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Tenant(TimestampMixin, Base):
    """A storefront / creator-platform customer of the SaaS"""
    __tablename__ = "tenants"

    slug = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default=TenantStatus.ACTIVE.value, index=True)
