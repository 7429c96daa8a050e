"""
Tax Form Service
Year-end 1099 forms: draft -> review -> approval -> filing -> delivery, with corrections
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..db import utcnow
from ..db.models import CorrectionType, PayeeType, TaxForm, TaxFormStatus, TaxFormType
from ..exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from .audit_log_service import SYSTEM_ACTOR, Actor, AuditAction, AuditLogService

logger = logging.getLogger(__name__)

CORRECTABLE_STATUSES = (TaxFormStatus.FILED.value, TaxFormStatus.DELIVERED.value)
DELIVERY_METHODS = ("email", "mail", "portal")
CORRECTABLE_FIELDS = (
    "recipient_name",
    "recipient_tin_last_four",
    "total_amount_cents",
    "box_amounts",
)


def _check_choice(value: str, enum_cls, label: str) -> None:
    allowed = [member.value for member in enum_cls]
    if value not in allowed:
        raise ValidationFailedError(f"Invalid {label} '{value}'", details={"allowed": allowed})


class TaxFormService:
    """Service for 1099 tax forms"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogService(db)

    def get_form(self, form_id: str) -> TaxForm:
        form = self.db.query(TaxForm).filter(TaxForm.id == form_id).first()
        if not form:
            raise NotFoundError(f"Tax form {form_id} not found")
        return form

    def _current_query(self, payee_id: str, payee_type: str, tax_year: int, form_type: Optional[str] = None):
        query = self.db.query(TaxForm).filter(
            TaxForm.payee_id == payee_id,
            TaxForm.payee_type == payee_type,
            TaxForm.tax_year == tax_year,
            TaxForm.status != TaxFormStatus.VOIDED.value,
        )
        if form_type:
            query = query.filter(TaxForm.form_type == form_type)
        return query

    def get_current_form(
        self, payee_id: str, payee_type: str, tax_year: int, form_type: Optional[str] = None
    ) -> Optional[TaxForm]:
        """Newest non-voided form for the payee and year"""
        return (
            self._current_query(payee_id, payee_type, tax_year, form_type)
            .order_by(TaxForm.created_at.desc())
            .first()
        )

    def list_forms(
        self,
        tax_year: Optional[int] = None,
        status: Optional[str] = None,
        payee_type: Optional[str] = None,
        form_type: Optional[str] = None,
        payee_id: Optional[str] = None,
    ) -> List[TaxForm]:
        query = self.db.query(TaxForm)
        if tax_year:
            query = query.filter(TaxForm.tax_year == tax_year)
        if status:
            query = query.filter(TaxForm.status == status)
        if payee_type:
            query = query.filter(TaxForm.payee_type == payee_type)
        if form_type:
            query = query.filter(TaxForm.form_type == form_type)
        if payee_id:
            query = query.filter(TaxForm.payee_id == payee_id)
        return query.order_by(TaxForm.tax_year.desc(), TaxForm.recipient_name.asc()).all()

    def approved_forms(self, tax_year: int) -> List[TaxForm]:
        """Forms ready to be filed"""
        return (
            self.db.query(TaxForm)
            .filter(TaxForm.tax_year == tax_year, TaxForm.status == TaxFormStatus.APPROVED.value)
            .order_by(TaxForm.recipient_name.asc())
            .all()
        )

    def _save(self, form: TaxForm, action: str, actor: Actor, details: Dict[str, Any] = None) -> TaxForm:
        self.audit.log(
            entity_type="tax_form",
            entity_id=form.id,
            action=action,
            actor=actor,
            details={"status": form.status, "tax_year": form.tax_year, **(details or {})},
        )
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(form)
        return form

    def create_form(
        self,
        payee_id: str,
        payee_type: str,
        tax_year: int,
        form_type: str,
        recipient_name: str,
        total_amount_cents: int,
        recipient_tin_last_four: Optional[str] = None,
        box_amounts: Optional[Dict[str, int]] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> TaxForm:
        _check_choice(payee_type, PayeeType, "payee type")
        _check_choice(form_type, TaxFormType, "form type")
        if total_amount_cents < 0:
            raise ValidationFailedError("Total amount cannot be negative")
        if recipient_tin_last_four and (len(recipient_tin_last_four) != 4 or not recipient_tin_last_four.isdigit()):
            raise ValidationFailedError("recipient_tin_last_four must be four digits")

        existing = self._current_query(payee_id, payee_type, tax_year, form_type).first()
        if existing:
            raise ConflictError(
                f"A {form_type} for this payee already exists for {tax_year}",
                details={"existing_form_id": existing.id, "status": existing.status},
            )

        form = TaxForm(
            payee_id=payee_id,
            payee_type=payee_type,
            tax_year=tax_year,
            form_type=form_type,
            recipient_name=recipient_name,
            recipient_tin_last_four=recipient_tin_last_four,
            total_amount_cents=total_amount_cents,
            box_amounts=box_amounts or {},
            status=TaxFormStatus.DRAFT.value,
            created_by=actor.id,
        )
        self.db.add(form)
        self.db.flush()
        return self._save(form, AuditAction.TAX_FORM_CREATED, actor)

    def _transition(self, form_id: str, expected: str, new_status: TaxFormStatus, action: str) -> TaxForm:
        form = self.get_form(form_id)
        if form.status != expected:
            raise InvalidStateError("tax form", form.status, action)
        form.status = new_status.value
        return form

    def submit_for_review(self, form_id: str, actor: Actor = SYSTEM_ACTOR) -> TaxForm:
        form = self._transition(form_id, TaxFormStatus.DRAFT.value, TaxFormStatus.PENDING_REVIEW, "submit")
        return self._save(form, AuditAction.TAX_FORM_SUBMITTED, actor)

    def approve(self, form_id: str, actor: Actor = SYSTEM_ACTOR) -> TaxForm:
        form = self._transition(form_id, TaxFormStatus.PENDING_REVIEW.value, TaxFormStatus.APPROVED, "approve")
        form.approved_by = actor.id
        form.approved_at = utcnow()
        return self._save(form, AuditAction.TAX_FORM_APPROVED, actor)

    def mark_filed(self, form_id: str, confirmation_number: str, actor: Actor = SYSTEM_ACTOR) -> TaxForm:
        if not confirmation_number:
            raise ValidationFailedError("Confirmation number is required")
        form = self._transition(form_id, TaxFormStatus.APPROVED.value, TaxFormStatus.FILED, "file")
        form.filed_at = utcnow()
        form.confirmation_number = confirmation_number
        return self._save(form, AuditAction.TAX_FORM_FILED, actor, {"confirmation_number": confirmation_number})

    def mark_delivered(self, form_id: str, delivery_method: str = "email", actor: Actor = SYSTEM_ACTOR) -> TaxForm:
        if delivery_method not in DELIVERY_METHODS:
            raise ValidationFailedError(
                f"Invalid delivery method '{delivery_method}'",
                details={"allowed": list(DELIVERY_METHODS)},
            )
        form = self._transition(form_id, TaxFormStatus.FILED.value, TaxFormStatus.DELIVERED, "deliver")
        form.delivery_method = delivery_method
        form.delivered_at = utcnow()
        return self._save(form, AuditAction.TAX_FORM_DELIVERED, actor, {"delivery_method": delivery_method})

    def void(self, form_id: str, reason: Optional[str] = None, actor: Actor = SYSTEM_ACTOR) -> TaxForm:
        form = self.get_form(form_id)
        if form.status == TaxFormStatus.VOIDED.value:
            raise InvalidStateError("tax form", form.status, "void")
        form.status = TaxFormStatus.VOIDED.value
        form.voided_at = utcnow()
        form.void_reason = reason
        return self._save(form, AuditAction.TAX_FORM_VOIDED, actor, {"reason": reason})

    def create_correction(
        self,
        original_form_id: str,
        correction_type: str,
        changes: Dict[str, Any],
        actor: Actor = SYSTEM_ACTOR,
    ) -> TaxForm:
        """
        Replace a filed or delivered form

        The original is voided and a new draft carrying the changes references it.
        """
        _check_choice(correction_type, CorrectionType, "correction type")
        unknown = set(changes) - set(CORRECTABLE_FIELDS)
        if unknown:
            raise ValidationFailedError(f"Fields cannot be corrected: {', '.join(sorted(unknown))}")

        original = self.get_form(original_form_id)
        if original.status not in CORRECTABLE_STATUSES:
            raise InvalidStateError("tax form", original.status, "correct")

        now = utcnow()
        original.status = TaxFormStatus.VOIDED.value
        original.voided_at = now
        original.void_reason = f"Superseded by {correction_type} correction"

        values = {field: getattr(original, field) for field in CORRECTABLE_FIELDS}
        values.update({k: v for k, v in changes.items() if v is not None})

        correction = TaxForm(
            payee_id=original.payee_id,
            payee_type=original.payee_type,
            tax_year=original.tax_year,
            form_type=original.form_type,
            status=TaxFormStatus.DRAFT.value,
            original_form_id=original.id,
            correction_type=correction_type,
            created_by=actor.id,
            **values,
        )
        self.db.add(correction)
        self.db.flush()

        self.audit.log(
            entity_type="tax_form",
            entity_id=original.id,
            action=AuditAction.TAX_FORM_VOIDED,
            actor=actor,
            details={"status": original.status, "superseded_by": correction.id},
        )
        logger.info(f"Tax form {original.id} superseded by correction {correction.id}")
        return self._save(
            correction,
            AuditAction.TAX_FORM_CORRECTED,
            actor,
            {"original_form_id": original.id, "correction_type": correction_type},
        )
