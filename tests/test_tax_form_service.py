"""
Tests for tax form (1099) service
"""
import pytest

from creator_commerce.exceptions import ConflictError, InvalidStateError, ValidationFailedError
from creator_commerce.services.audit_log_service import Actor
from creator_commerce.services.tax_form_service import TaxFormService

ADMIN = Actor("admin", "admin-1", "Ada Admin")


@pytest.fixture
def service(db):
    return TaxFormService(db)


@pytest.fixture
def form(service):
    return service.create_form(
        payee_id="creator-1",
        payee_type="creator",
        tax_year=2024,
        form_type="1099-NEC",
        recipient_name="Cleo Creator",
        recipient_tin_last_four="1234",
        total_amount_cents=1250000,
        box_amounts={"1": 1250000},
        actor=ADMIN,
    )


def _file(service, form):
    service.submit_for_review(form.id)
    service.approve(form.id, actor=ADMIN)
    return service.mark_filed(form.id, "IRS-2024-0001")


class TestTaxFormLifecycle:
    def test_create_draft(self, form):
        assert form.status == "draft"
        assert form.box_amounts == {"1": 1250000}
        assert form.created_by == "admin-1"

    def test_full_lifecycle(self, service, form):
        assert service.submit_for_review(form.id).status == "pending_review"
        assert service.approved_forms(2024) == []

        approved = service.approve(form.id, actor=ADMIN)
        assert approved.status == "approved"
        assert approved.approved_by == "admin-1"
        assert [f.id for f in service.approved_forms(2024)] == [form.id]

        filed = service.mark_filed(form.id, "IRS-2024-0001")
        assert filed.status == "filed"
        assert filed.confirmation_number == "IRS-2024-0001"

        delivered = service.mark_delivered(form.id, "mail")
        assert delivered.status == "delivered"
        assert delivered.delivery_method == "mail"

    def test_out_of_order_transition(self, service, form):
        with pytest.raises(InvalidStateError) as exc_info:
            service.mark_filed(form.id, "IRS-1")
        assert exc_info.value.message == "Cannot file tax form in status 'draft'"

    def test_unknown_delivery_method(self, service, form):
        _file(service, form)
        with pytest.raises(ValidationFailedError):
            service.mark_delivered(form.id, "pigeon")

    def test_void(self, service, form):
        voided = service.void(form.id, reason="Duplicate payee")
        assert voided.status == "voided"
        assert voided.void_reason == "Duplicate payee"
        with pytest.raises(InvalidStateError):
            service.void(form.id)


class TestTaxFormValidation:
    def test_duplicate_for_year(self, service, form):
        with pytest.raises(ConflictError) as exc_info:
            service.create_form("creator-1", "creator", 2024, "1099-NEC", "Cleo Creator", 100)
        assert exc_info.value.details["existing_form_id"] == form.id

    def test_voided_form_frees_the_year(self, service, form):
        service.void(form.id)
        replacement = service.create_form("creator-1", "creator", 2024, "1099-NEC", "Cleo Creator", 100)
        assert service.get_current_form("creator-1", "creator", 2024).id == replacement.id

    def test_different_form_type_allowed(self, service, form):
        misc = service.create_form("creator-1", "creator", 2024, "1099-MISC", "Cleo Creator", 100)
        assert misc.form_type == "1099-MISC"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"payee_type": "employee"},
            {"form_type": "W-2"},
            {"total_amount_cents": -1},
            {"recipient_tin_last_four": "12a4"},
        ],
    )
    def test_invalid_input(self, service, kwargs):
        values = {
            "payee_id": "vendor-1",
            "payee_type": "vendor",
            "tax_year": 2024,
            "form_type": "1099-MISC",
            "recipient_name": "Vendor LLC",
            "total_amount_cents": 100,
        }
        values.update(kwargs)
        with pytest.raises(ValidationFailedError):
            service.create_form(**values)


class TestCorrections:
    """Test corrections supersede filed forms"""

    def test_correction_voids_original(self, service, form):
        _file(service, form)
        correction = service.create_correction(
            form.id, "amount", {"total_amount_cents": 1300000, "box_amounts": {"1": 1300000}}, actor=ADMIN
        )

        original = service.get_form(form.id)
        assert original.status == "voided"
        assert original.void_reason == "Superseded by amount correction"

        assert correction.status == "draft"
        assert correction.original_form_id == form.id
        assert correction.correction_type == "amount"
        assert correction.total_amount_cents == 1300000
        assert correction.recipient_name == "Cleo Creator"
        assert service.get_current_form("creator-1", "creator", 2024).id == correction.id

    def test_draft_cannot_be_corrected(self, service, form):
        with pytest.raises(InvalidStateError):
            service.create_correction(form.id, "info", {"recipient_name": "Cleo C."})

    def test_uncorrectable_field(self, service, form):
        _file(service, form)
        with pytest.raises(ValidationFailedError):
            service.create_correction(form.id, "info", {"payee_id": "someone-else"})
