"""
Agent Relationship Service
Tracks how well an AI agent knows each person it talks to
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..db import utcnow
from ..db.models import AgentRelationship, PersonType
from ..exceptions import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)

INTERACTION_WEIGHT = 0.15
MINUTES_WEIGHT = 0.10
DAILY_DECAY = 0.01


def compute_familiarity(
    interaction_count: int,
    conversation_minutes: float,
    last_interaction_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> float:
    """
    Familiarity score in [0, 1]

    Grows logarithmically with interactions and conversation time, and loses
    0.01 per whole day since the last interaction.
    """
    now = now or utcnow()
    days_since = 0
    if last_interaction_at is not None:
        days_since = max(0, (now - last_interaction_at).days)

    score = (
        INTERACTION_WEIGHT * math.log1p(max(0, interaction_count))
        + MINUTES_WEIGHT * math.log1p(max(0.0, conversation_minutes))
        - DAILY_DECAY * days_since
    )
    return min(1.0, max(0.0, score))


class RelationshipService:
    """Service for agent relationships"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, agent_id: str, person_type: str, person_id: str):
        return self.db.query(AgentRelationship).filter(
            AgentRelationship.agent_id == agent_id,
            AgentRelationship.person_type == person_type,
            AgentRelationship.person_id == person_id,
        )

    def get_relationship(self, agent_id: str, person_type: str, person_id: str) -> AgentRelationship:
        relationship = self._query(agent_id, person_type, person_id).first()
        if not relationship:
            raise NotFoundError(f"No relationship between agent {agent_id} and {person_type} {person_id}")
        return relationship

    def list_relationships(
        self, agent_id: str, min_familiarity: Optional[float] = None, limit: int = 50
    ) -> List[AgentRelationship]:
        query = self.db.query(AgentRelationship).filter(AgentRelationship.agent_id == agent_id)
        if min_familiarity is not None:
            query = query.filter(AgentRelationship.familiarity_score >= min_familiarity)
        return (
            query.order_by(AgentRelationship.familiarity_score.desc(), AgentRelationship.last_interaction_at.desc())
            .limit(max(1, min(limit, 500)))
            .all()
        )

    def record_interaction(
        self,
        agent_id: str,
        person_type: str,
        person_id: str,
        conversation_minutes: float = 0.0,
        now: Optional[datetime] = None,
    ) -> AgentRelationship:
        """Count one interaction, creating the relationship on first contact"""
        if person_type not in [p.value for p in PersonType]:
            raise ValidationFailedError(f"Invalid person type '{person_type}'")
        if conversation_minutes < 0:
            raise ValidationFailedError("Conversation minutes cannot be negative")

        now = now or utcnow()
        relationship = self._query(agent_id, person_type, person_id).first()
        if relationship is None:
            relationship = AgentRelationship(
                agent_id=agent_id,
                person_type=person_type,
                person_id=person_id,
                interaction_count=0,
                total_conversation_minutes=0.0,
                trust_level=0.5,
            )
            self.db.add(relationship)

        relationship.interaction_count += 1
        relationship.total_conversation_minutes += conversation_minutes
        relationship.last_interaction_at = now
        relationship.familiarity_score = compute_familiarity(
            relationship.interaction_count,
            relationship.total_conversation_minutes,
            now,
            now,
        )

        self.db.commit()
        self.db.refresh(relationship)
        return relationship

    def update_trust(self, agent_id: str, person_type: str, person_id: str, trust_level: float) -> AgentRelationship:
        if trust_level < 0 or trust_level > 1:
            raise ValidationFailedError("Trust level must be between 0 and 1")
        relationship = self.get_relationship(agent_id, person_type, person_id)
        relationship.trust_level = trust_level
        self.db.commit()
        self.db.refresh(relationship)
        return relationship

    def update_preferences(
        self,
        agent_id: str,
        person_type: str,
        person_id: str,
        preferences: Dict[str, Any],
        notes: Optional[str] = None,
    ) -> AgentRelationship:
        """Merge communication preferences into the stored ones"""
        relationship = self.get_relationship(agent_id, person_type, person_id)
        merged = dict(relationship.communication_preferences or {})
        merged.update(preferences or {})
        # reassign so the JSON column is flagged dirty
        relationship.communication_preferences = merged
        if notes is not None:
            relationship.notes = notes
        self.db.commit()
        self.db.refresh(relationship)
        return relationship

    def apply_decay(self, now: Optional[datetime] = None) -> int:
        """Recompute familiarity for relationships idle for more than a day"""
        now = now or utcnow()
        stale = (
            self.db.query(AgentRelationship)
            .filter(
                AgentRelationship.last_interaction_at.isnot(None),
                AgentRelationship.last_interaction_at < now - timedelta(days=1),
            )
            .all()
        )
        updated = 0
        for relationship in stale:
            score = compute_familiarity(
                relationship.interaction_count,
                relationship.total_conversation_minutes,
                relationship.last_interaction_at,
                now,
            )
            if score != relationship.familiarity_score:
                relationship.familiarity_score = score
                updated += 1

        if updated:
            self.db.commit()
        logger.info(f"Familiarity decay: {updated} of {len(stale)} idle relationships updated")
        return updated
