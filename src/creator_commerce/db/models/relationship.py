"""
AI agent relationship (familiarity) model
"""
import enum

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, UniqueConstraint

from ..base import Base, JSONType, TimestampMixin, new_id
from ..tenancy import TenantScopedMixin


class PersonType(str, enum.Enum):
    CREATOR = "creator"
    CUSTOMER = "customer"
    TEAM_MEMBER = "team_member"


class AgentRelationship(TenantScopedMixin, TimestampMixin, Base):
    """What an AI agent knows about a person it talks to"""
    __tablename__ = "agent_relationships"

    id = Column(String(36), primary_key=True, default=new_id)
    agent_id = Column(String(100), nullable=False, index=True)
    person_type = Column(String(20), nullable=False)
    person_id = Column(String(100), nullable=False)
    interaction_count = Column(Integer, nullable=False, default=0)
    total_conversation_minutes = Column(Float, nullable=False, default=0.0)
    last_interaction_at = Column(DateTime, nullable=True, index=True)
    familiarity_score = Column(Float, nullable=False, default=0.0)
    trust_level = Column(Float, nullable=False, default=0.5)
    communication_preferences = Column(JSONType, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_slug", "agent_id", "person_type", "person_id",
            name="uq_agent_relationships_person",
        ),
    )
