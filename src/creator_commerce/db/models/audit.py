"""
Append-only audit log model
"""
import enum

from sqlalchemy import Column, DateTime, Index, String

from ..base import Base, JSONType, new_id, utcnow
from ..tenancy import TenantScopedMixin


class ActorType(str, enum.Enum):
    """Who performed an audited action"""
    ADMIN = "admin"
    CREATOR = "creator"
    CUSTOMER = "customer"
    SIGNER = "signer"
    SYSTEM = "system"


class AuditLog(TenantScopedMixin, Base):
    """
    Audit log entry

    PII (IP address, user agent) is stored only as SHA-256 hashes.
    """
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=new_id)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    action = Column(String(50), nullable=False, index=True)
    actor_type = Column(String(20), nullable=False, default=ActorType.SYSTEM.value)
    actor_id = Column(String(100), nullable=True, index=True)
    actor_name = Column(String(200), nullable=True)
    ip_hash = Column(String(64), nullable=True)
    user_agent_hash = Column(String(64), nullable=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
    )
