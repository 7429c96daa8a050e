"""
Tests for treasury draw request service
"""
import pytest
from unittest.mock import Mock

from creator_commerce.exceptions import InvalidStateError, NotFoundError, ValidationFailedError
from creator_commerce.services.audit_log_service import Actor
from creator_commerce.services.draw_request_service import DrawRequestService

APPROVER = Actor("admin", "cfo-1", "Cam CFO")


@pytest.fixture
def service(db):
    return DrawRequestService(db)


@pytest.fixture
def draw_request(service):
    return service.create_draw_request(
        amount_cents=250000,
        requested_by="admin-1",
        reason="Equipment",
        auto_send=True,
    )


class TestDrawRequestFlow:
    def test_create(self, draw_request):
        assert draw_request.status == "pending"
        assert draw_request.amount_cents == 250000
        assert draw_request.currency == "USD"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, service, amount):
        with pytest.raises(ValidationFailedError):
            service.create_draw_request(amount_cents=amount, requested_by="admin-1")

    def test_approve_and_complete(self, service, draw_request):
        service.mark_pending_approval(draw_request.id)
        approved = service.approve(draw_request.id, APPROVER)
        assert approved.status == "approved"
        assert approved.approved_by == "cfo-1"
        assert approved.approved_at is not None

        assert [d.id for d in service.approved_awaiting_processing()] == [draw_request.id]

        completed = service.complete(draw_request.id, "wire-8812")
        assert completed.status == "completed"
        assert completed.transfer_reference == "wire-8812"
        assert completed.processed_at is not None
        assert service.approved_awaiting_processing() == []

    def test_reject(self, service, draw_request):
        rejected = service.reject(draw_request.id, APPROVER, reason="Over budget")
        assert rejected.status == "rejected"
        assert rejected.rejected_by == "cfo-1"
        assert rejected.rejected_reason == "Over budget"

    def test_fail(self, service, draw_request):
        service.approve(draw_request.id, APPROVER)
        failed = service.fail(draw_request.id, "Account closed")
        assert failed.status == "failed"
        assert failed.error_message == "Account closed"

    def test_cannot_approve_twice(self, service, draw_request):
        service.approve(draw_request.id, APPROVER)
        with pytest.raises(InvalidStateError):
            service.approve(draw_request.id, APPROVER)

    def test_cannot_complete_pending(self, service, draw_request):
        with pytest.raises(InvalidStateError) as exc_info:
            service.complete(draw_request.id, "wire-1")
        assert exc_info.value.current_status == "pending"

    def test_manual_requests_not_queued(self, service):
        manual = service.create_draw_request(amount_cents=100, requested_by="admin-1")
        service.approve(manual.id, APPROVER)
        assert service.approved_awaiting_processing() == []

    def test_filter_by_status(self, service, draw_request):
        other = service.create_draw_request(amount_cents=100, requested_by="admin-1")
        service.reject(other.id, APPROVER)
        assert [d.id for d in service.list_draw_requests(status="pending")] == [draw_request.id]


class TestDrawRequestServiceMocked:
    """Test service behaviour against a mocked session"""

    @pytest.fixture
    def mock_db(self):
        return Mock()

    def test_missing_request(self, mock_db):
        mock_db.query().filter().first.return_value = None
        with pytest.raises(NotFoundError):
            DrawRequestService(mock_db).get_draw_request("missing")

    def test_commit_failure_rolls_back(self, mock_db):
        draw_request = Mock()
        draw_request.id = "dr-1"
        draw_request.status = "pending"
        draw_request.amount_cents = 100
        mock_db.query().filter().first.return_value = draw_request
        mock_db.commit.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            DrawRequestService(mock_db).approve("dr-1", APPROVER)
        mock_db.rollback.assert_called_once()
