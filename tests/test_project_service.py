"""
Tests for creator project service
"""
import pytest

from creator_commerce.db.models import ProjectRevision
from creator_commerce.exceptions import InvalidStateError, NotFoundError, ValidationFailedError
from creator_commerce.services.audit_log_service import Actor, AuditLogService
from creator_commerce.services.project_service import ProjectService

ADMIN = Actor("admin", "admin-1", "Ada Admin")
CREATOR = Actor("creator", "creator-1", "Cleo Creator")


@pytest.fixture
def service(db):
    return ProjectService(db)


@pytest.fixture
def project(service):
    return service.create_project(
        creator_id="creator-1",
        title="  Spring campaign  ",
        brief="Three short videos",
        payment_cents=50000,
        max_revisions=1,
        actor=ADMIN,
    )


def _deliver(service, project):
    service.add_file(project.id, "creator-1", "cut-1.mp4", "https://cdn.example.com/cut-1.mp4")
    return service.submit_project(project.id, "creator-1", actor=CREATOR)


class TestProjectLifecycle:
    """Test draft -> submitted -> approved -> completed"""

    def test_create(self, project):
        assert project.status == "draft"
        assert project.title == "Spring campaign"
        assert project.revision_count == 0
        assert project.created_by == "admin-1"

    def test_happy_path(self, service, project, db):
        submitted = _deliver(service, project)
        assert submitted.status == "submitted"
        assert submitted.submitted_at is not None

        approved = service.approve_project(project.id, actor=ADMIN)
        assert approved.status == "approved"

        completed = service.complete_project(project.id, actor=ADMIN)
        assert completed.status == "completed"
        assert completed.completed_at is not None

        actions = [e.action for e in AuditLogService(db).list_for_entity("project", project.id)]
        assert set(actions) == {
            "project.created", "project.submitted", "project.approved", "project.completed",
        }

    def test_submit_requires_files(self, service, project):
        with pytest.raises(ValidationFailedError):
            service.submit_project(project.id, "creator-1")

    def test_approve_draft_is_invalid(self, service, project):
        with pytest.raises(InvalidStateError) as exc_info:
            service.approve_project(project.id)
        assert exc_info.value.message == "Cannot approve project in status 'draft'"

    def test_cancel_completed_is_invalid(self, service, project):
        _deliver(service, project)
        service.approve_project(project.id)
        service.complete_project(project.id)
        with pytest.raises(InvalidStateError):
            service.cancel_project(project.id)

    def test_cancel_draft(self, service, project):
        assert service.cancel_project(project.id, reason="Brand pulled out").status == "cancelled"


class TestRevisions:
    """Test the bounded revision loop"""

    def test_request_and_resubmit(self, service, project, db):
        _deliver(service, project)
        revised = service.request_revision(project.id, "Shorter intro please", actor=ADMIN)
        assert revised.status == "revision_requested"
        assert revised.revision_count == 1

        resubmitted = service.submit_project(project.id, "creator-1", notes="Trimmed to 5s")
        assert resubmitted.status == "submitted"

        revision = db.query(ProjectRevision).filter_by(project_id=project.id).one()
        assert revision.revision_number == 1
        assert revision.status == "submitted"
        assert revision.response_notes == "Trimmed to 5s"

    def test_revision_limit(self, service, project):
        _deliver(service, project)
        service.request_revision(project.id, "Round one")
        service.submit_project(project.id, "creator-1")
        with pytest.raises(ValidationFailedError) as exc_info:
            service.request_revision(project.id, "Round two")
        assert exc_info.value.details == {"max_revisions": 1}

    def test_revision_needs_notes(self, service, project):
        _deliver(service, project)
        with pytest.raises(ValidationFailedError):
            service.request_revision(project.id, "   ")

    def test_revision_only_when_submitted(self, service, project):
        with pytest.raises(InvalidStateError):
            service.request_revision(project.id, "Too early")


class TestCreatorEdits:
    """Test creator-side edits and ownership"""

    def test_update_title(self, service, project):
        updated = service.update_project(project.id, "creator-1", {"title": "Summer campaign"})
        assert updated.title == "Summer campaign"

    def test_update_protected_field(self, service, project):
        with pytest.raises(ValidationFailedError):
            service.update_project(project.id, "creator-1", {"payment_cents": 1})

    def test_other_creator_sees_not_found(self, service, project):
        with pytest.raises(NotFoundError):
            service.get_project(project.id, creator_id="creator-2")

    def test_files_locked_after_submit(self, service, project):
        _deliver(service, project)
        with pytest.raises(InvalidStateError):
            service.add_file(project.id, "creator-1", "extra.mp4", "https://cdn.example.com/extra.mp4")

    def test_delete_file(self, service, project):
        project_file = service.add_file(project.id, "creator-1", "a.png", "https://cdn.example.com/a.png")
        service.delete_file(project.id, "creator-1", project_file.id)
        with pytest.raises(NotFoundError):
            service.delete_file(project.id, "creator-1", project_file.id)
