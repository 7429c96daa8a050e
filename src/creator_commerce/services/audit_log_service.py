"""
Audit Log Service
Append-only record of state transitions for compliance and support
"""
import hashlib
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from ..db.models import ActorType, AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Audit action types (enum-like constants)"""
    # Subscriptions
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_PAUSED = "subscription.paused"
    SUBSCRIPTION_RESUMED = "subscription.resumed"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_SKIPPED = "subscription.skipped"
    SUBSCRIPTION_RESCHEDULED = "subscription.rescheduled"
    SUBSCRIPTION_UPDATED = "subscription.updated"

    # Creator projects
    PROJECT_CREATED = "project.created"
    PROJECT_SUBMITTED = "project.submitted"
    PROJECT_REVISION_REQUESTED = "project.revision_requested"
    PROJECT_APPROVED = "project.approved"
    PROJECT_COMPLETED = "project.completed"
    PROJECT_CANCELLED = "project.cancelled"

    # Treasury
    DRAW_REQUESTED = "draw_request.created"
    DRAW_APPROVAL_REQUESTED = "draw_request.approval_requested"
    DRAW_APPROVED = "draw_request.approved"
    DRAW_REJECTED = "draw_request.rejected"
    DRAW_COMPLETED = "draw_request.completed"
    DRAW_FAILED = "draw_request.failed"

    # Tax
    TAX_FORM_CREATED = "tax_form.created"
    TAX_FORM_SUBMITTED = "tax_form.submitted"
    TAX_FORM_APPROVED = "tax_form.approved"
    TAX_FORM_FILED = "tax_form.filed"
    TAX_FORM_DELIVERED = "tax_form.delivered"
    TAX_FORM_VOIDED = "tax_form.voided"
    TAX_FORM_CORRECTED = "tax_form.corrected"

    # Welcome calls
    WELCOME_CALL_BOOKED = "welcome_call.booked"
    WELCOME_CALL_CANCELLED = "welcome_call.cancelled"
    WELCOME_CALL_COMPLETED = "welcome_call.completed"


class Actor(NamedTuple):
    """Who is performing a state transition"""
    type: str = ActorType.SYSTEM.value
    id: Optional[str] = None
    name: Optional[str] = None


SYSTEM_ACTOR = Actor()


class AuditLogService:
    """
    Service for creating and querying audit logs

    Features:
    - PII protection (hashes IP and user agent)
    - Append-only (no updates/deletes)
    - Entries join the caller's transaction; the calling service commits
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _hash_pii(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return hashlib.sha256(value.encode()).hexdigest()

    def log(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        actor: Actor = SYSTEM_ACTOR,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """
        Add an audit log entry to the current transaction

        Args:
            entity_type: Kind of record affected (subscription, draw_request, ...)
            entity_id: Id of the record affected
            action: Action type (use AuditAction constants)
            actor: Who performed the action (type is admin, creator, customer, signer or system)
            ip_address: Client IP address (will be hashed)
            user_agent: Client user agent (will be hashed)
            details: Additional context (no PII!)
        """
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_type=actor.type,
            actor_id=actor.id,
            actor_name=actor.name,
            ip_hash=self._hash_pii(ip_address),
            user_agent_hash=self._hash_pii(user_agent),
            details=details or {},
        )
        self.db.add(entry)
        logger.debug(f"Audit log queued: {action} on {entity_type} {entity_id} by {actor.type}:{actor.id}")
        return entry

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[AuditLog]:
        """Entries for one record, oldest first"""
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
            .all()
        )
