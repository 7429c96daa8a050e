"""
Creator Project Service
Brief -> deliverables -> review loop with a bounded number of revision rounds
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..db import utcnow
from ..db.models import CreatorProject, ProjectFile, ProjectRevision, ProjectStatus, RevisionStatus
from ..exceptions import InvalidStateError, NotFoundError, ValidationFailedError
from .audit_log_service import SYSTEM_ACTOR, Actor, AuditAction, AuditLogService

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (ProjectStatus.DRAFT.value, ProjectStatus.REVISION_REQUESTED.value)
CREATOR_EDITABLE_FIELDS = ("title", "description")


class ProjectService:
    """Service for creator projects"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogService(db)

    def get_project(self, project_id: str, creator_id: Optional[str] = None) -> CreatorProject:
        """Load a project; when creator_id is given the project must belong to that creator"""
        query = self.db.query(CreatorProject).filter(CreatorProject.id == project_id)
        if creator_id is not None:
            query = query.filter(CreatorProject.creator_id == creator_id)
        project = query.first()
        if not project:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    def list_projects(self, creator_id: Optional[str] = None, status: Optional[str] = None) -> List[CreatorProject]:
        query = self.db.query(CreatorProject)
        if creator_id:
            query = query.filter(CreatorProject.creator_id == creator_id)
        if status:
            query = query.filter(CreatorProject.status == status)
        return query.order_by(CreatorProject.created_at.desc()).all()

    def _transition(self, project: CreatorProject, action: str, actor: Actor, details: Dict[str, Any] = None):
        self.audit.log(
            entity_type="project",
            entity_id=project.id,
            action=action,
            actor=actor,
            details={"status": project.status, **(details or {})},
        )
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(project)
        return project

    def create_project(
        self,
        creator_id: str,
        title: str,
        description: Optional[str] = None,
        brief: Optional[str] = None,
        brand_id: Optional[str] = None,
        due_date: Optional[date] = None,
        payment_cents: int = 0,
        max_revisions: int = 3,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CreatorProject:
        if not title or not title.strip():
            raise ValidationFailedError("Project title is required")
        if payment_cents < 0:
            raise ValidationFailedError("Payment cannot be negative")
        if max_revisions < 0:
            raise ValidationFailedError("max_revisions cannot be negative")

        project = CreatorProject(
            creator_id=creator_id,
            title=title.strip(),
            description=description,
            brief=brief,
            brand_id=brand_id,
            due_date=due_date,
            payment_cents=payment_cents,
            max_revisions=max_revisions,
            revision_count=0,
            status=ProjectStatus.DRAFT.value,
            created_by=actor.id,
        )
        self.db.add(project)
        self.db.flush()
        logger.info(f"Created project {project.id} for creator {creator_id}")
        return self._transition(project, AuditAction.PROJECT_CREATED, actor)

    def _require_editable(self, project: CreatorProject, action: str) -> None:
        if project.status not in EDITABLE_STATUSES:
            raise InvalidStateError("project", project.status, action)

    def update_project(self, project_id: str, creator_id: str, updates: Dict[str, Any]) -> CreatorProject:
        """Creator edits to the working copy"""
        project = self.get_project(project_id, creator_id=creator_id)
        self._require_editable(project, "update")

        for key, value in updates.items():
            if key not in CREATOR_EDITABLE_FIELDS:
                raise ValidationFailedError(f"Field '{key}' cannot be updated")
            if value is not None:
                setattr(project, key, value)

        self.db.commit()
        self.db.refresh(project)
        return project

    def add_file(
        self,
        project_id: str,
        creator_id: str,
        name: str,
        url: str,
        size_bytes: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> ProjectFile:
        project = self.get_project(project_id, creator_id=creator_id)
        self._require_editable(project, "add files to")
        if not name or not url:
            raise ValidationFailedError("File name and url are required")

        project_file = ProjectFile(
            project_id=project.id,
            name=name,
            url=url,
            size_bytes=size_bytes,
            content_type=content_type,
            uploaded_by=creator_id,
        )
        self.db.add(project_file)
        self.db.commit()
        self.db.refresh(project_file)
        return project_file

    def delete_file(self, project_id: str, creator_id: str, file_id: str) -> None:
        project = self.get_project(project_id, creator_id=creator_id)
        self._require_editable(project, "remove files from")

        project_file = (
            self.db.query(ProjectFile)
            .filter(ProjectFile.id == file_id, ProjectFile.project_id == project.id)
            .first()
        )
        if not project_file:
            raise NotFoundError(f"File {file_id} not found")
        self.db.delete(project_file)
        self.db.commit()

    def _open_revision(self, project: CreatorProject) -> Optional[ProjectRevision]:
        return (
            self.db.query(ProjectRevision)
            .filter(
                ProjectRevision.project_id == project.id,
                ProjectRevision.status == RevisionStatus.REQUESTED.value,
            )
            .order_by(ProjectRevision.revision_number.desc())
            .first()
        )

    def submit_project(
        self,
        project_id: str,
        creator_id: str,
        notes: Optional[str] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CreatorProject:
        """Hand the deliverables in for review"""
        project = self.get_project(project_id, creator_id=creator_id)
        self._require_editable(project, "submit")

        file_count = self.db.query(ProjectFile).filter(ProjectFile.project_id == project.id).count()
        if file_count == 0:
            raise ValidationFailedError("Upload at least one file before submitting")

        now = utcnow()
        revision = self._open_revision(project)
        if revision:
            revision.status = RevisionStatus.SUBMITTED.value
            revision.submitted_at = now
            revision.response_notes = notes

        project.status = ProjectStatus.SUBMITTED.value
        project.submitted_at = now
        return self._transition(
            project,
            AuditAction.PROJECT_SUBMITTED,
            actor,
            {"file_count": file_count, "revision_number": revision.revision_number if revision else None},
        )

    def request_revision(self, project_id: str, notes: str, actor: Actor = SYSTEM_ACTOR) -> CreatorProject:
        project = self.get_project(project_id)
        if project.status != ProjectStatus.SUBMITTED.value:
            raise InvalidStateError("project", project.status, "request a revision for")
        if not notes or not notes.strip():
            raise ValidationFailedError("Revision notes are required")
        if project.revision_count >= project.max_revisions:
            raise ValidationFailedError(
                f"Maximum of {project.max_revisions} revisions reached",
                details={"max_revisions": project.max_revisions},
            )

        project.revision_count += 1
        self.db.add(
            ProjectRevision(
                project_id=project.id,
                revision_number=project.revision_count,
                notes=notes.strip(),
                status=RevisionStatus.REQUESTED.value,
                requested_by=actor.id,
            )
        )
        project.status = ProjectStatus.REVISION_REQUESTED.value
        return self._transition(
            project,
            AuditAction.PROJECT_REVISION_REQUESTED,
            actor,
            {"revision_number": project.revision_count},
        )

    def approve_project(self, project_id: str, actor: Actor = SYSTEM_ACTOR) -> CreatorProject:
        project = self.get_project(project_id)
        if project.status != ProjectStatus.SUBMITTED.value:
            raise InvalidStateError("project", project.status, "approve")
        project.status = ProjectStatus.APPROVED.value
        project.approved_at = utcnow()
        return self._transition(project, AuditAction.PROJECT_APPROVED, actor)

    def complete_project(self, project_id: str, actor: Actor = SYSTEM_ACTOR) -> CreatorProject:
        project = self.get_project(project_id)
        if project.status != ProjectStatus.APPROVED.value:
            raise InvalidStateError("project", project.status, "complete")
        project.status = ProjectStatus.COMPLETED.value
        project.completed_at = utcnow()
        return self._transition(project, AuditAction.PROJECT_COMPLETED, actor)

    def cancel_project(self, project_id: str, reason: Optional[str] = None, actor: Actor = SYSTEM_ACTOR) -> CreatorProject:
        project = self.get_project(project_id)
        if project.status in (ProjectStatus.COMPLETED.value, ProjectStatus.CANCELLED.value):
            raise InvalidStateError("project", project.status, "cancel")
        project.status = ProjectStatus.CANCELLED.value
        return self._transition(project, AuditAction.PROJECT_CANCELLED, actor, {"reason": reason})
