"""
Creator project models (briefs, deliverable files, revision rounds)
"""
import enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..base import Base, TimestampMixin, new_id, utcnow
from ..tenancy import TenantScopedMixin


class ProjectStatus(str, enum.Enum):
    """Creator project status enum"""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVISION_REQUESTED = "revision_requested"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RevisionStatus(str, enum.Enum):
    REQUESTED = "requested"
    SUBMITTED = "submitted"


class CreatorProject(TenantScopedMixin, TimestampMixin, Base):
    """A paid deliverable assigned to a creator"""
    __tablename__ = "creator_projects"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(100), nullable=False, index=True)
    brand_id = Column(String(100), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    brief = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    payment_cents = Column(Integer, nullable=False, default=0)
    max_revisions = Column(Integer, nullable=False, default=3)
    revision_count = Column(Integer, nullable=False, default=0)
    status = Column(String(30), nullable=False, default=ProjectStatus.DRAFT.value, index=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(String(100), nullable=True)

    files = relationship(
        "ProjectFile",
        back_populates="project",
        order_by="ProjectFile.created_at",
        cascade="all, delete-orphan",
    )
    revisions = relationship(
        "ProjectRevision",
        back_populates="project",
        order_by="ProjectRevision.revision_number",
        cascade="all, delete-orphan",
    )


class ProjectFile(TenantScopedMixin, Base):
    """Deliverable file uploaded by the creator"""
    __tablename__ = "project_files"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("creator_projects.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    url = Column(String(1000), nullable=False)
    size_bytes = Column(Integer, nullable=True)
    content_type = Column(String(100), nullable=True)
    uploaded_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    project = relationship("CreatorProject", back_populates="files")


class ProjectRevision(TenantScopedMixin, Base):
    """One round of requested changes"""
    __tablename__ = "project_revisions"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("creator_projects.id"), nullable=False, index=True)
    revision_number = Column(Integer, nullable=False)
    notes = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=RevisionStatus.REQUESTED.value)
    requested_by = Column(String(100), nullable=True)
    requested_at = Column(DateTime, default=utcnow, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    response_notes = Column(Text, nullable=True)

    project = relationship("CreatorProject", back_populates="revisions")
