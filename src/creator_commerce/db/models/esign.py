"""
E-signature models: documents, signers and the signing audit trail
"""
import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..base import Base, JSONType, TimestampMixin, new_id, utcnow
from ..tenancy import TenantScopedMixin


class DocumentStatus(str, enum.Enum):
    """E-sign document status enum"""
    DRAFT = "draft"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DECLINED = "declined"
    VOIDED = "voided"
    EXPIRED = "expired"


class SignerStatus(str, enum.Enum):
    """Signer status enum"""
    PENDING = "pending"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    DECLINED = "declined"


class SignerRole(str, enum.Enum):
    SIGNER = "signer"
    CC = "cc"
    VIEWER = "viewer"
    APPROVER = "approver"


class SignatureType(str, enum.Enum):
    DRAWN = "drawn"
    TYPED = "typed"
    UPLOADED = "uploaded"


class EsignAction(str, enum.Enum):
    CREATED = "created"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    DECLINED = "declined"
    COMPLETED = "completed"
    VOIDED = "voided"
    EXPIRED = "expired"


class EsignDocument(TenantScopedMixin, TimestampMixin, Base):
    """Document routed to one or more signers"""
    __tablename__ = "esign_documents"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    creator_id = Column(String(100), nullable=True, index=True)
    file_url = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value, index=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    sent_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)
    voided_reason = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)

    signers = relationship(
        "EsignSigner",
        back_populates="document",
        order_by="EsignSigner.signing_order",
        cascade="all, delete-orphan",
    )


class EsignSigner(TenantScopedMixin, Base):
    """A party on a document; reaches the signing page through access_token"""
    __tablename__ = "esign_signers"

    id = Column(String(36), primary_key=True, default=new_id)
    document_id = Column(String(36), ForeignKey("esign_documents.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=SignerRole.SIGNER.value)
    signing_order = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=SignerStatus.PENDING.value)
    access_token = Column(String(64), nullable=False, unique=True, index=True)

    viewed_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    declined_at = Column(DateTime, nullable=True)
    decline_reason = Column(Text, nullable=True)

    signature_type = Column(String(20), nullable=True)
    signature_data = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    document = relationship("EsignDocument", back_populates="signers")


class EsignAuditEntry(TenantScopedMixin, Base):
    """Signing trail entry, one per document or signer transition"""
    __tablename__ = "esign_audit_log"

    id = Column(String(36), primary_key=True, default=new_id)
    document_id = Column(String(36), ForeignKey("esign_documents.id"), nullable=False, index=True)
    signer_id = Column(String(36), ForeignKey("esign_signers.id"), nullable=True)
    action = Column(String(30), nullable=False)
    performed_by = Column(String(255), nullable=True)
    details = Column(JSONType, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
