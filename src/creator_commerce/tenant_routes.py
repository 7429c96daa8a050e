"""
Platform tenant administration routes
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .db.engine import get_db
from .services.tenant_service import TenantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/platform/tenants", tags=["tenants"])


class TenantCreateRequest(BaseModel):
    slug: str = Field(..., min_length=2, max_length=63, description="Lowercase letters, digits and hyphens")
    name: str = Field(..., min_length=1, max_length=200)


class TenantResponse(BaseModel):
    slug: str
    name: str
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    request: TenantCreateRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM)),
    db: Session = Depends(get_db),
):
    logger.info(f"Platform user {principal.id} creating tenant {request.slug}")
    return TenantService(db).create_tenant(request.slug, request.name)


@router.get("", response_model=List[TenantResponse])
async def list_tenants(
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(require_role(Role.PLATFORM)),
    db: Session = Depends(get_db),
):
    return TenantService(db).list_tenants(status=status_filter)


@router.get("/{slug}", response_model=TenantResponse)
async def get_tenant(
    slug: str,
    principal: Principal = Depends(require_role(Role.PLATFORM)),
    db: Session = Depends(get_db),
):
    return TenantService(db).get_tenant(slug)


@router.post("/{slug}/suspend", response_model=TenantResponse)
async def suspend_tenant(
    slug: str,
    principal: Principal = Depends(require_role(Role.PLATFORM)),
    db: Session = Depends(get_db),
):
    logger.warning(f"Platform user {principal.id} suspending tenant {slug}")
    return TenantService(db).suspend_tenant(slug)


@router.post("/{slug}/activate", response_model=TenantResponse)
async def activate_tenant(
    slug: str,
    principal: Principal = Depends(require_role(Role.PLATFORM)),
    db: Session = Depends(get_db),
):
    return TenantService(db).activate_tenant(slug)
