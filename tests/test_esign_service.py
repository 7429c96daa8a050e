"""
Tests for e-signature service
"""
import pytest
from datetime import datetime, timedelta, timezone

from creator_commerce.db import utcnow
from creator_commerce.db.models import AuditLog
from creator_commerce.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationFailedError
from creator_commerce.services.audit_log_service import Actor
from creator_commerce.services.esign_service import EsignService

ADMIN = Actor("admin", "admin-1", "Ada Admin")


@pytest.fixture
def service(db):
    return EsignService(db)


@pytest.fixture
def document(service):
    return service.create_document(
        name="Brand partnership agreement",
        message="Please sign by Friday",
        signers=[
            {"name": "Alice", "email": "alice@example.com", "signing_order": 1},
            {"name": "Bob", "email": "bob@example.com", "signing_order": 1},
            {"name": "Carol", "email": "carol@example.com", "signing_order": 2},
            {"name": "Dan", "email": "dan@example.com", "role": "cc", "signing_order": 1},
        ],
        actor=ADMIN,
    )


def _signer(document, name):
    return next(s for s in document.signers if s.name == name)


def _sign(service, signer):
    return service.sign(signer.access_token, "typed", signer.name, ip_address="203.0.113.7", user_agent="pytest")


class TestDocumentSetup:
    def test_create_draft_with_tokens(self, document):
        assert document.status == "draft"
        assert len(document.signers) == 4
        tokens = {s.access_token for s in document.signers}
        assert len(tokens) == 4
        assert all(len(t) >= 40 for t in tokens)

    def test_requires_a_signer(self, service):
        with pytest.raises(ValidationFailedError):
            service.create_document("NDA", [{"name": "Dan", "email": "dan@example.com", "role": "cc"}])

    def test_rejects_unknown_role(self, service):
        with pytest.raises(ValidationFailedError):
            service.create_document("NDA", [{"name": "Eve", "email": "eve@example.com", "role": "notary"}])

    def test_send_notifies_first_group(self, service, document):
        sent = service.send_document(document.id, actor=ADMIN)
        assert sent.status == "pending"
        assert sent.sent_at is not None
        statuses = {s.name: s.status for s in sent.signers}
        assert statuses == {"Alice": "sent", "Bob": "sent", "Carol": "pending", "Dan": "pending"}

    def test_send_twice_is_invalid(self, service, document):
        service.send_document(document.id)
        with pytest.raises(InvalidStateError):
            service.send_document(document.id)

    def test_counts(self, service, document):
        counts = service.document_counts()
        assert counts["draft"] == 1
        assert counts["all"] == 1


class TestSigningOrder:
    """Test parallel signing within an order and sequencing across orders"""

    def test_later_order_waits(self, service, document):
        service.send_document(document.id)
        carol = _signer(document, "Carol")
        assert service.get_signing_session(carol.access_token) is None
        assert service.can_signer_sign(carol) is False
        assert {s.name for s in service.next_signers(document.id)} == {"Alice", "Bob"}

    def test_cc_cannot_sign(self, service, document):
        service.send_document(document.id)
        assert service.get_signing_session(_signer(document, "Dan").access_token) is None

    def test_draft_links_inactive(self, service, document):
        assert service.get_signing_session(_signer(document, "Alice").access_token) is None

    def test_full_signing_flow(self, service, document, db):
        service.send_document(document.id)

        session = service.get_signing_session(_signer(document, "Alice").access_token)
        assert session.signer.name == "Alice"
        assert session.document.id == document.id

        viewed = service.mark_viewed(_signer(document, "Alice").access_token, ip_address="203.0.113.7")
        assert viewed.status == "viewed"
        assert viewed.viewed_at is not None
        assert service.get_document(document.id).status == "in_progress"

        after_alice = _sign(service, _signer(document, "Alice"))
        assert after_alice.status == "in_progress"
        assert {s.name for s in service.next_signers(document.id)} == {"Bob"}

        after_bob = _sign(service, _signer(document, "Bob"))
        assert after_bob.status == "in_progress"
        assert _signer(after_bob, "Carol").status == "sent"

        completed = _sign(service, _signer(document, "Carol"))
        assert completed.status == "completed"
        assert completed.completed_at is not None
        assert _signer(completed, "Carol").signature_type == "typed"

        actions = [e.action for e in service.get_audit_log(document.id)]
        assert actions[0] == "created"
        assert actions.count("signed") == 3
        assert "completed" in actions

        audit = db.query(AuditLog).filter_by(entity_type="esign_document", entity_id=document.id).all()
        assert {"esign.created", "esign.sent", "esign.signed", "esign.completed"} <= {a.action for a in audit}
        signed = [a for a in audit if a.action == "esign.signed"]
        assert all(a.actor_type == "signer" for a in signed)
        assert all(a.ip_hash and a.ip_hash != "203.0.113.7" for a in signed)

    def test_signing_twice_conflicts(self, service, document):
        service.send_document(document.id)
        alice = _signer(document, "Alice")
        _sign(service, alice)
        with pytest.raises(ConflictError):
            _sign(service, alice)

    def test_unknown_token(self, service, document):
        service.send_document(document.id)
        with pytest.raises(NotFoundError):
            service.sign("not-a-token", "typed", "x")

    def test_invalid_signature_type(self, service, document):
        service.send_document(document.id)
        with pytest.raises(ValidationFailedError):
            service.sign(_signer(document, "Alice").access_token, "fingerprint", "x")


class TestDeclineVoidExpire:
    def test_decline_ends_document(self, service, document):
        service.send_document(document.id)
        declined = service.decline(_signer(document, "Bob").access_token, reason="Wrong rate")
        assert declined.status == "declined"
        assert _signer(declined, "Bob").decline_reason == "Wrong rate"
        assert service.get_signing_session(_signer(document, "Alice").access_token) is None

    def test_void(self, service, document):
        service.send_document(document.id)
        voided = service.void_document(document.id, reason="Terms changed", actor=ADMIN)
        assert voided.status == "voided"
        assert voided.voided_reason == "Terms changed"
        with pytest.raises(InvalidStateError):
            service.void_document(document.id)

    def test_expired_link(self, service, db):
        doc = service.create_document(
            "Release form",
            [{"name": "Alice", "email": "alice@example.com"}],
            expires_at=utcnow() + timedelta(days=1),
        )
        service.send_document(doc.id)
        token = doc.signers[0].access_token
        assert service.get_signing_session(token) is not None
        assert service.get_signing_session(token, now=utcnow() + timedelta(days=2)) is None

    def test_expire_overdue(self, service):
        doc = service.create_document(
            "Release form",
            [{"name": "Alice", "email": "alice@example.com"}],
            expires_at=datetime(2025, 1, 1),
        )
        service.send_document(doc.id)
        assert service.expire_overdue(now=datetime(2024, 12, 31)) == 0
        assert service.expire_overdue(now=datetime(2025, 1, 2)) == 1
        assert service.get_document(doc.id).status == "expired"
        assert service.expire_overdue(now=datetime(2025, 1, 2)) == 0

    def test_offset_deadline_stored_as_utc(self, service):
        eastern = timezone(timedelta(hours=-5))
        deadline = datetime(2025, 3, 1, 12, 0, tzinfo=eastern)
        doc = service.create_document(
            "Release form",
            [{"name": "Alice", "email": "alice@example.com"}],
            expires_at=deadline,
        )
        service.send_document(doc.id)
        token = doc.signers[0].access_token

        assert service.get_document(doc.id).expires_at == datetime(2025, 3, 1, 17, 0)
        assert service.get_signing_session(token, now=datetime(2025, 3, 1, 14, 0)) is not None
        assert service.get_signing_session(token, now=datetime(2025, 3, 1, 17, 1)) is None

    def test_link_and_job_agree_at_deadline(self, service):
        deadline = datetime(2025, 1, 1, 9, 0)
        doc = service.create_document(
            "Release form",
            [{"name": "Alice", "email": "alice@example.com"}],
            expires_at=deadline,
        )
        service.send_document(doc.id)
        token = doc.signers[0].access_token

        assert service.get_signing_session(token, now=deadline - timedelta(seconds=1)) is not None
        assert service.get_signing_session(token, now=deadline) is None
        assert service.expire_overdue(now=deadline) == 1
