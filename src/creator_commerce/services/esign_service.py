"""
E-Sign Service
Document routing and the signer-facing signing flow

Signers are grouped by signing_order; everyone at the lowest order that still
has unsigned signers may sign in parallel, later orders wait their turn.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import to_utc_naive, utcnow
from ..db.models import (
    DocumentStatus,
    EsignAction,
    EsignAuditEntry,
    EsignDocument,
    EsignSigner,
    SignatureType,
    SignerRole,
    SignerStatus,
)
from ..exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from .audit_log_service import SYSTEM_ACTOR, Actor, AuditLogService

logger = logging.getLogger(__name__)

SIGNABLE_DOCUMENT_STATUSES = (DocumentStatus.PENDING.value, DocumentStatus.IN_PROGRESS.value)
FINISHED_SIGNER_STATUSES = (SignerStatus.SIGNED.value, SignerStatus.DECLINED.value)
UNVOIDABLE_STATUSES = (
    DocumentStatus.COMPLETED.value,
    DocumentStatus.VOIDED.value,
    DocumentStatus.DECLINED.value,
    DocumentStatus.EXPIRED.value,
)


@dataclass
class SigningSession:
    document: EsignDocument
    signer: EsignSigner


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)


class EsignService:
    """Service for e-signature documents"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditLogService(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log(
        self,
        document: EsignDocument,
        action: EsignAction,
        signer: Optional[EsignSigner] = None,
        actor: Optional[Actor] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Write the signing trail entry and the tenant audit log entry for one transition"""
        if actor is None:
            actor = Actor("signer", signer.id, signer.email) if signer else SYSTEM_ACTOR
        self.db.add(
            EsignAuditEntry(
                document_id=document.id,
                signer_id=signer.id if signer else None,
                action=action.value,
                performed_by=actor.name or actor.id or actor.type,
                details=details or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        self.audit.log(
            entity_type="esign_document",
            entity_id=document.id,
            action=f"esign.{action.value}",
            actor=actor,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"status": document.status, **({"signer_id": signer.id} if signer else {})},
        )

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _signers(self, document_id: str) -> List[EsignSigner]:
        return (
            self.db.query(EsignSigner)
            .filter(EsignSigner.document_id == document_id)
            .order_by(EsignSigner.signing_order.asc(), EsignSigner.created_at.asc())
            .all()
        )

    def _lowest_open_order(self, document_id: str) -> Optional[int]:
        return (
            self.db.query(func.min(EsignSigner.signing_order))
            .filter(
                EsignSigner.document_id == document_id,
                EsignSigner.role == SignerRole.SIGNER.value,
                EsignSigner.status.notin_(FINISHED_SIGNER_STATUSES),
            )
            .scalar()
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def get_document(self, document_id: str) -> EsignDocument:
        document = self.db.query(EsignDocument).filter(EsignDocument.id == document_id).first()
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    def list_documents(self, status: Optional[str] = None, creator_id: Optional[str] = None) -> List[EsignDocument]:
        query = self.db.query(EsignDocument)
        if status:
            query = query.filter(EsignDocument.status == status)
        if creator_id:
            query = query.filter(EsignDocument.creator_id == creator_id)
        return query.order_by(EsignDocument.created_at.desc()).all()

    def document_counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in DocumentStatus}
        rows = (
            self.db.query(EsignDocument.status, func.count(EsignDocument.id))
            .group_by(EsignDocument.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        counts["all"] = sum(counts.values())
        return counts

    def create_document(
        self,
        name: str,
        signers: List[Dict[str, Any]],
        message: Optional[str] = None,
        creator_id: Optional[str] = None,
        file_url: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> EsignDocument:
        """Create a draft document with its signers"""
        if not name or not name.strip():
            raise ValidationFailedError("Document name is required")
        if not any(s.get("role", SignerRole.SIGNER.value) == SignerRole.SIGNER.value for s in signers):
            raise ValidationFailedError("At least one signer with role 'signer' is required")

        roles = [r.value for r in SignerRole]
        for s in signers:
            if s.get("role", SignerRole.SIGNER.value) not in roles:
                raise ValidationFailedError(f"Invalid signer role '{s.get('role')}'", details={"allowed": roles})
            if int(s.get("signing_order", 1)) < 1:
                raise ValidationFailedError("signing_order must be at least 1")
            if not s.get("name") or not s.get("email"):
                raise ValidationFailedError("Each signer needs a name and email")

        document = EsignDocument(
            name=name.strip(),
            message=message,
            creator_id=creator_id,
            file_url=file_url,
            expires_at=to_utc_naive(expires_at) if expires_at else None,
            status=DocumentStatus.DRAFT.value,
            created_by=actor.id,
        )
        self.db.add(document)
        self.db.flush()

        for s in signers:
            self.db.add(
                EsignSigner(
                    document_id=document.id,
                    name=s["name"],
                    email=s["email"],
                    role=s.get("role", SignerRole.SIGNER.value),
                    signing_order=int(s.get("signing_order", 1)),
                    status=SignerStatus.PENDING.value,
                    access_token=generate_access_token(),
                )
            )

        self._log(document, EsignAction.CREATED, actor=actor, details={"signer_count": len(signers)})
        self._commit()
        self.db.refresh(document)
        logger.info(f"Created e-sign document {document.id} with {len(signers)} signers")
        return document

    def send_document(self, document_id: str, actor: Actor = SYSTEM_ACTOR) -> EsignDocument:
        """Release a draft to its first group of signers"""
        document = self.get_document(document_id)
        if document.status != DocumentStatus.DRAFT.value:
            raise InvalidStateError("document", document.status, "send")

        document.status = DocumentStatus.PENDING.value
        document.sent_at = utcnow()

        recipients = self.next_signers(document.id)
        for signer in recipients:
            signer.status = SignerStatus.SENT.value

        self._log(
            document,
            EsignAction.SENT,
            actor=actor,
            details={"recipients": [s.id for s in recipients]},
        )
        self._commit()
        self.db.refresh(document)
        return document

    def void_document(self, document_id: str, reason: Optional[str] = None, actor: Actor = SYSTEM_ACTOR) -> EsignDocument:
        document = self.get_document(document_id)
        if document.status in UNVOIDABLE_STATUSES:
            raise InvalidStateError("document", document.status, "void")

        document.status = DocumentStatus.VOIDED.value
        document.voided_at = utcnow()
        document.voided_reason = reason
        self._log(document, EsignAction.VOIDED, actor=actor, details={"reason": reason})
        self._commit()
        self.db.refresh(document)
        return document

    def get_audit_log(self, document_id: str) -> List[EsignAuditEntry]:
        self.get_document(document_id)
        return (
            self.db.query(EsignAuditEntry)
            .filter(EsignAuditEntry.document_id == document_id)
            .order_by(EsignAuditEntry.created_at.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Signing order
    # ------------------------------------------------------------------

    def can_signer_sign(self, signer: EsignSigner) -> bool:
        """True when the signer still has to sign and it is their turn"""
        if signer.role != SignerRole.SIGNER.value:
            return False
        if signer.status in FINISHED_SIGNER_STATUSES:
            return False
        lowest = self._lowest_open_order(signer.document_id)
        if lowest is None:
            return False
        return signer.signing_order <= lowest

    def next_signers(self, document_id: str) -> List[EsignSigner]:
        """Signers who may sign now (all open signers at the lowest open order)"""
        lowest = self._lowest_open_order(document_id)
        if lowest is None:
            return []
        return (
            self.db.query(EsignSigner)
            .filter(
                EsignSigner.document_id == document_id,
                EsignSigner.signing_order == lowest,
                EsignSigner.role == SignerRole.SIGNER.value,
                EsignSigner.status.notin_(FINISHED_SIGNER_STATUSES),
            )
            .order_by(EsignSigner.created_at.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Signer-facing flow
    # ------------------------------------------------------------------

    def _signer_by_token(self, access_token: str) -> Optional[EsignSigner]:
        if not access_token:
            return None
        return self.db.query(EsignSigner).filter(EsignSigner.access_token == access_token).first()

    def get_signing_session(self, access_token: str, now: Optional[datetime] = None) -> Optional[SigningSession]:
        """
        Resolve a signing link

        Returns None when the token is unknown, the document is not awaiting
        signatures or has expired, or it is not this signer's turn.
        """
        signer = self._signer_by_token(access_token)
        if not signer:
            return None

        document = self.db.query(EsignDocument).filter(EsignDocument.id == signer.document_id).first()
        if not document or document.status not in SIGNABLE_DOCUMENT_STATUSES:
            return None
        if document.expires_at and document.expires_at <= (now or utcnow()):
            return None
        if not self.can_signer_sign(signer):
            return None

        return SigningSession(document=document, signer=signer)

    def _require_session(self, access_token: str) -> SigningSession:
        session = self.get_signing_session(access_token)
        if session is None:
            signer = self._signer_by_token(access_token)
            if signer and signer.status in FINISHED_SIGNER_STATUSES:
                raise ConflictError(f"Signer has already {signer.status} this document")
            raise NotFoundError("Signing link is invalid, expired or not yet active")
        return session

    def mark_viewed(
        self, access_token: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> EsignSigner:
        session = self._require_session(access_token)
        signer, document = session.signer, session.document

        if signer.viewed_at is None:
            signer.viewed_at = utcnow()
        signer.status = SignerStatus.VIEWED.value
        signer.ip_address = ip_address or signer.ip_address
        signer.user_agent = user_agent or signer.user_agent

        if document.status == DocumentStatus.PENDING.value:
            document.status = DocumentStatus.IN_PROGRESS.value

        self._log(document, EsignAction.VIEWED, signer=signer, ip_address=ip_address, user_agent=user_agent)
        self._commit()
        self.db.refresh(signer)
        return signer

    def sign(
        self,
        access_token: str,
        signature_type: str,
        signature_data: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EsignDocument:
        """Record a signature and advance the document"""
        if signature_type not in [t.value for t in SignatureType]:
            raise ValidationFailedError(f"Invalid signature type '{signature_type}'")
        if not signature_data:
            raise ValidationFailedError("Signature data is required")

        session = self._require_session(access_token)
        signer, document = session.signer, session.document
        now = utcnow()

        signer.status = SignerStatus.SIGNED.value
        signer.signed_at = now
        signer.viewed_at = signer.viewed_at or now
        signer.signature_type = signature_type
        signer.signature_data = signature_data
        signer.ip_address = ip_address or signer.ip_address
        signer.user_agent = user_agent or signer.user_agent
        if document.status == DocumentStatus.PENDING.value:
            document.status = DocumentStatus.IN_PROGRESS.value
        self.db.flush()

        self._log(document, EsignAction.SIGNED, signer=signer, ip_address=ip_address, user_agent=user_agent)

        remaining = self.next_signers(document.id)
        if not remaining:
            document.status = DocumentStatus.COMPLETED.value
            document.completed_at = now
            self._log(document, EsignAction.COMPLETED)
            logger.info(f"E-sign document {document.id} completed")
        else:
            for next_signer in remaining:
                if next_signer.status == SignerStatus.PENDING.value:
                    next_signer.status = SignerStatus.SENT.value

        self._commit()
        self.db.refresh(document)
        return document

    def decline(
        self,
        access_token: str,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EsignDocument:
        session = self._require_session(access_token)
        signer, document = session.signer, session.document
        now = utcnow()

        signer.status = SignerStatus.DECLINED.value
        signer.declined_at = now
        signer.decline_reason = reason
        document.status = DocumentStatus.DECLINED.value

        self._log(
            document,
            EsignAction.DECLINED,
            signer=signer,
            details={"reason": reason},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._commit()
        self.db.refresh(document)
        logger.info(f"E-sign document {document.id} declined by signer {signer.id}")
        return document

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """Expire documents still awaiting signatures past their deadline"""
        now = now or utcnow()
        overdue = (
            self.db.query(EsignDocument)
            .filter(
                EsignDocument.status.in_(SIGNABLE_DOCUMENT_STATUSES),
                EsignDocument.expires_at.isnot(None),
                EsignDocument.expires_at <= now,
            )
            .all()
        )
        for document in overdue:
            document.status = DocumentStatus.EXPIRED.value
            self._log(document, EsignAction.EXPIRED, details={"expires_at": document.expires_at.isoformat()})

        if overdue:
            self._commit()
            logger.info(f"Expired {len(overdue)} e-sign documents")
        return len(overdue)
