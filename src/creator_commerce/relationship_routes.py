"""
AI agent relationship routes
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import get_tenant_db
from .services.relationship_service import RelationshipService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/agents/{agent_id}/relationships", tags=["agents"])

require_admin = require_role(Role.ADMIN)


class InteractionRequest(BaseModel):
    person_type: str
    person_id: str
    conversation_minutes: float = Field(0.0, ge=0)


class TrustRequest(BaseModel):
    trust_level: float = Field(..., ge=0, le=1)


class PreferencesRequest(BaseModel):
    preferences: Dict[str, Any] = {}
    notes: Optional[str] = None


class RelationshipResponse(BaseModel):
    id: str
    agent_id: str
    person_type: str
    person_id: str
    interaction_count: int
    total_conversation_minutes: float
    last_interaction_at: Optional[datetime]
    familiarity_score: float
    trust_level: float
    communication_preferences: Optional[Dict[str, Any]]
    notes: Optional[str]

    class Config:
        from_attributes = True


@router.get("", response_model=List[RelationshipResponse])
async def list_relationships(
    agent_id: str,
    min_familiarity: Optional[float] = Query(None, ge=0, le=1),
    limit: int = Query(50, ge=1, le=500),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return RelationshipService(db).list_relationships(agent_id, min_familiarity=min_familiarity, limit=limit)


@router.post("/interactions", response_model=RelationshipResponse)
async def record_interaction(
    agent_id: str,
    request: InteractionRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return RelationshipService(db).record_interaction(
        agent_id, request.person_type, request.person_id, request.conversation_minutes
    )


@router.get("/{person_type}/{person_id}", response_model=RelationshipResponse)
async def get_relationship(
    agent_id: str,
    person_type: str,
    person_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return RelationshipService(db).get_relationship(agent_id, person_type, person_id)


@router.put("/{person_type}/{person_id}/trust", response_model=RelationshipResponse)
async def update_trust(
    agent_id: str,
    person_type: str,
    person_id: str,
    request: TrustRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return RelationshipService(db).update_trust(agent_id, person_type, person_id, request.trust_level)


@router.put("/{person_type}/{person_id}/preferences", response_model=RelationshipResponse)
async def update_preferences(
    agent_id: str,
    person_type: str,
    person_id: str,
    request: PreferencesRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return RelationshipService(db).update_preferences(
        agent_id, person_type, person_id, request.preferences, notes=request.notes
    )
