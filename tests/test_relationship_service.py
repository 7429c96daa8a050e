"""
Tests for agent relationship (familiarity) service
"""
import math
import pytest
from datetime import datetime, timedelta

from creator_commerce.exceptions import NotFoundError, ValidationFailedError
from creator_commerce.services.relationship_service import RelationshipService, compute_familiarity

NOW = datetime(2025, 1, 10, 12, 0)


class TestComputeFamiliarity:
    """Test the familiarity formula"""

    def test_first_interaction(self):
        assert compute_familiarity(1, 0, NOW, NOW) == pytest.approx(0.15 * math.log(2))

    def test_decays_per_whole_day(self):
        fresh = compute_familiarity(10, 60, NOW, NOW)
        five_days = compute_familiarity(10, 60, NOW - timedelta(days=5, hours=23), NOW)
        assert fresh - five_days == pytest.approx(0.05)

    def test_clamped_to_one(self):
        assert compute_familiarity(10 ** 6, 10 ** 6, NOW, NOW) == 1.0

    def test_clamped_to_zero(self):
        assert compute_familiarity(1, 1, NOW - timedelta(days=365), NOW) == 0.0

    def test_never_interacted(self):
        assert compute_familiarity(0, 0, None, NOW) == 0.0


class TestRelationshipService:
    @pytest.fixture
    def service(self, db):
        return RelationshipService(db)

    def test_first_contact_creates_relationship(self, service):
        relationship = service.record_interaction("agent-support", "customer", "cust-1", 12.5, now=NOW)
        assert relationship.interaction_count == 1
        assert relationship.total_conversation_minutes == 12.5
        assert relationship.last_interaction_at == NOW
        assert relationship.trust_level == 0.5
        assert relationship.familiarity_score == pytest.approx(compute_familiarity(1, 12.5, NOW, NOW))
        assert relationship.tenant_slug == "acme"

    def test_interactions_accumulate(self, service):
        service.record_interaction("agent-support", "customer", "cust-1", 10, now=NOW)
        relationship = service.record_interaction("agent-support", "customer", "cust-1", 5, now=NOW)
        assert relationship.interaction_count == 2
        assert relationship.total_conversation_minutes == 15

    def test_invalid_person_type(self, service):
        with pytest.raises(ValidationFailedError):
            service.record_interaction("agent-support", "robot", "r2d2")

    def test_negative_minutes(self, service):
        with pytest.raises(ValidationFailedError):
            service.record_interaction("agent-support", "customer", "cust-1", -1)

    def test_trust_and_preferences(self, service):
        service.record_interaction("agent-support", "creator", "creator-1", now=NOW)
        assert service.update_trust("agent-support", "creator", "creator-1", 0.9).trust_level == 0.9
        with pytest.raises(ValidationFailedError):
            service.update_trust("agent-support", "creator", "creator-1", 1.5)

        service.update_preferences("agent-support", "creator", "creator-1", {"tone": "casual"})
        updated = service.update_preferences(
            "agent-support", "creator", "creator-1", {"channel": "email"}, notes="Prefers mornings"
        )
        assert updated.communication_preferences == {"tone": "casual", "channel": "email"}
        assert updated.notes == "Prefers mornings"

    def test_unknown_relationship(self, service):
        with pytest.raises(NotFoundError):
            service.get_relationship("agent-support", "customer", "nobody")

    def test_list_orders_by_familiarity(self, service):
        service.record_interaction("agent-support", "customer", "light", 1, now=NOW)
        for _ in range(3):
            service.record_interaction("agent-support", "customer", "regular", 30, now=NOW)
        service.record_interaction("agent-sales", "customer", "elsewhere", 30, now=NOW)

        ranked = service.list_relationships("agent-support")
        assert [r.person_id for r in ranked] == ["regular", "light"]
        assert [r.person_id for r in service.list_relationships("agent-support", min_familiarity=0.5)] == ["regular"]

    def test_apply_decay(self, service):
        service.record_interaction("agent-support", "customer", "cust-1", 30, now=NOW)
        fresh = service.get_relationship("agent-support", "customer", "cust-1").familiarity_score

        assert service.apply_decay(NOW + timedelta(hours=12)) == 0
        assert service.apply_decay(NOW + timedelta(days=10)) == 1
        decayed = service.get_relationship("agent-support", "customer", "cust-1").familiarity_score
        assert fresh - decayed == pytest.approx(0.10)
