"""
Draw Request Service
Treasury withdrawals: request -> approval -> transfer outcome
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..db import utcnow
from ..db.models import DrawRequest, DrawRequestStatus
from ..exceptions import InvalidStateError, NotFoundError, ValidationFailedError
from .audit_log_service import SYSTEM_ACTOR, Actor, AuditAction, AuditLogService

logger = logging.getLogger(__name__)

DECIDABLE_STATUSES = (DrawRequestStatus.PENDING.value, DrawRequestStatus.PENDING_APPROVAL.value)
PROCESSING_BATCH_SIZE = 10


class DrawRequestService:
    """Service for treasury draw requests"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogService(db)

    def get_draw_request(self, draw_request_id: str) -> DrawRequest:
        draw_request = self.db.query(DrawRequest).filter(DrawRequest.id == draw_request_id).first()
        if not draw_request:
            raise NotFoundError(f"Draw request {draw_request_id} not found")
        return draw_request

    def list_draw_requests(self, status: Optional[str] = None) -> List[DrawRequest]:
        query = self.db.query(DrawRequest)
        if status:
            query = query.filter(DrawRequest.status == status)
        return query.order_by(DrawRequest.created_at.desc()).all()

    def approved_awaiting_processing(self, limit: int = PROCESSING_BATCH_SIZE) -> List[DrawRequest]:
        """Approved auto-send requests not yet handed to the payment rail, oldest approval first"""
        return (
            self.db.query(DrawRequest)
            .filter(
                DrawRequest.status == DrawRequestStatus.APPROVED.value,
                DrawRequest.auto_send.is_(True),
                DrawRequest.processed_at.is_(None),
            )
            .order_by(DrawRequest.approved_at.asc())
            .limit(limit)
            .all()
        )

    def _save(self, draw_request: DrawRequest, action: str, actor: Actor, details: dict = None) -> DrawRequest:
        self.audit.log(
            entity_type="draw_request",
            entity_id=draw_request.id,
            action=action,
            actor=actor,
            details={"status": draw_request.status, "amount_cents": draw_request.amount_cents, **(details or {})},
        )
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(draw_request)
        return draw_request

    def create_draw_request(
        self,
        amount_cents: int,
        requested_by: str,
        currency: str = "USD",
        reason: Optional[str] = None,
        requester_name: Optional[str] = None,
        destination_account_id: Optional[str] = None,
        auto_send: bool = False,
        actor: Actor = SYSTEM_ACTOR,
    ) -> DrawRequest:
        if amount_cents is None or amount_cents <= 0:
            raise ValidationFailedError("Amount must be greater than zero")

        draw_request = DrawRequest(
            amount_cents=amount_cents,
            currency=currency.upper(),
            reason=reason,
            requested_by=requested_by,
            requester_name=requester_name,
            destination_account_id=destination_account_id,
            auto_send=auto_send,
            status=DrawRequestStatus.PENDING.value,
        )
        self.db.add(draw_request)
        self.db.flush()
        logger.info(f"Draw request {draw_request.id} created for {amount_cents} {currency}")
        return self._save(draw_request, AuditAction.DRAW_REQUESTED, actor)

    def mark_pending_approval(self, draw_request_id: str, actor: Actor = SYSTEM_ACTOR) -> DrawRequest:
        """Record that an approval request went out to the approvers"""
        draw_request = self.get_draw_request(draw_request_id)
        if draw_request.status != DrawRequestStatus.PENDING.value:
            raise InvalidStateError("draw request", draw_request.status, "request approval for")
        draw_request.status = DrawRequestStatus.PENDING_APPROVAL.value
        return self._save(draw_request, AuditAction.DRAW_APPROVAL_REQUESTED, actor)

    def approve(self, draw_request_id: str, approver: Actor) -> DrawRequest:
        draw_request = self.get_draw_request(draw_request_id)
        if draw_request.status not in DECIDABLE_STATUSES:
            raise InvalidStateError("draw request", draw_request.status, "approve")

        draw_request.status = DrawRequestStatus.APPROVED.value
        draw_request.approved_by = approver.id
        draw_request.approved_at = utcnow()
        logger.info(f"Draw request {draw_request.id} approved by {approver.id}")
        return self._save(draw_request, AuditAction.DRAW_APPROVED, approver)

    def reject(self, draw_request_id: str, approver: Actor, reason: Optional[str] = None) -> DrawRequest:
        draw_request = self.get_draw_request(draw_request_id)
        if draw_request.status not in DECIDABLE_STATUSES:
            raise InvalidStateError("draw request", draw_request.status, "reject")

        draw_request.status = DrawRequestStatus.REJECTED.value
        draw_request.rejected_by = approver.id
        draw_request.rejected_at = utcnow()
        draw_request.rejected_reason = reason
        return self._save(draw_request, AuditAction.DRAW_REJECTED, approver, {"reason": reason})

    def complete(self, draw_request_id: str, transfer_reference: str, actor: Actor = SYSTEM_ACTOR) -> DrawRequest:
        draw_request = self.get_draw_request(draw_request_id)
        if draw_request.status != DrawRequestStatus.APPROVED.value:
            raise InvalidStateError("draw request", draw_request.status, "complete")
        if not transfer_reference:
            raise ValidationFailedError("Transfer reference is required")

        draw_request.status = DrawRequestStatus.COMPLETED.value
        draw_request.transfer_reference = transfer_reference
        draw_request.processed_at = utcnow()
        return self._save(
            draw_request, AuditAction.DRAW_COMPLETED, actor, {"transfer_reference": transfer_reference}
        )

    def fail(self, draw_request_id: str, error_message: str, actor: Actor = SYSTEM_ACTOR) -> DrawRequest:
        draw_request = self.get_draw_request(draw_request_id)
        if draw_request.status != DrawRequestStatus.APPROVED.value:
            raise InvalidStateError("draw request", draw_request.status, "fail")

        draw_request.status = DrawRequestStatus.FAILED.value
        draw_request.error_message = error_message
        draw_request.processed_at = utcnow()
        logger.warning(f"Draw request {draw_request.id} failed: {error_message}")
        return self._save(draw_request, AuditAction.DRAW_FAILED, actor, {"error": error_message})
