"""
Creator project routes: admin review and creator workspace
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import actor_from, get_tenant_db
from .services.project_service import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/projects", tags=["projects"])
creator_router = APIRouter(prefix="/api/creator/projects", tags=["creator"])

require_admin = require_role(Role.ADMIN)
require_creator = require_role(Role.CREATOR)


class ProjectCreateRequest(BaseModel):
    creator_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    brief: Optional[str] = None
    brand_id: Optional[str] = None
    due_date: Optional[date] = None
    payment_cents: int = Field(0, ge=0)
    max_revisions: int = Field(3, ge=0)


class ProjectUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectFileRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1000)
    size_bytes: Optional[int] = Field(None, ge=0)
    content_type: Optional[str] = None


class SubmitRequest(BaseModel):
    notes: Optional[str] = None


class RevisionRequest(BaseModel):
    notes: str = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ProjectFileResponse(BaseModel):
    id: str
    name: str
    url: str
    size_bytes: Optional[int]
    content_type: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ProjectRevisionResponse(BaseModel):
    id: str
    revision_number: int
    notes: str
    status: str
    requested_at: datetime
    submitted_at: Optional[datetime]
    response_notes: Optional[str]

    class Config:
        from_attributes = True


class ProjectResponse(BaseModel):
    id: str
    creator_id: str
    brand_id: Optional[str]
    title: str
    description: Optional[str]
    brief: Optional[str]
    due_date: Optional[date]
    payment_cents: int
    max_revisions: int
    revision_count: int
    status: str
    submitted_at: Optional[datetime]
    approved_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    files: List[ProjectFileResponse] = []
    revisions: List[ProjectRevisionResponse] = []

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------

@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    creator_id: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).list_projects(creator_id=creator_id, status=status_filter)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: ProjectCreateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).create_project(**request.model_dump(), actor=actor_from(principal))


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).get_project(project_id)


@router.post("/{project_id}/request-revision", response_model=ProjectResponse)
async def request_revision(
    project_id: str,
    request: RevisionRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).request_revision(project_id, request.notes, actor=actor_from(principal))


@router.post("/{project_id}/approve", response_model=ProjectResponse)
async def approve_project(
    project_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).approve_project(project_id, actor=actor_from(principal))


@router.post("/{project_id}/complete", response_model=ProjectResponse)
async def complete_project(
    project_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).complete_project(project_id, actor=actor_from(principal))


@router.post("/{project_id}/cancel", response_model=ProjectResponse)
async def cancel_project(
    project_id: str,
    request: CancelRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).cancel_project(project_id, reason=request.reason, actor=actor_from(principal))


# ----------------------------------------------------------------------
# Creator
# ----------------------------------------------------------------------

@creator_router.get("", response_model=List[ProjectResponse])
async def list_my_projects(
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).list_projects(creator_id=principal.id, status=status_filter)


@creator_router.get("/{project_id}", response_model=ProjectResponse)
async def get_my_project(
    project_id: str,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).get_project(project_id, creator_id=principal.id)


@creator_router.patch("/{project_id}", response_model=ProjectResponse)
async def update_my_project(
    project_id: str,
    request: ProjectUpdateRequest,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).update_project(project_id, principal.id, request.model_dump(exclude_none=True))


@creator_router.post(
    "/{project_id}/files", response_model=ProjectFileResponse, status_code=status.HTTP_201_CREATED
)
async def add_project_file(
    project_id: str,
    request: ProjectFileRequest,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).add_file(project_id, principal.id, **request.model_dump())


@creator_router.delete("/{project_id}/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project_file(
    project_id: str,
    file_id: str,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    ProjectService(db).delete_file(project_id, principal.id, file_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@creator_router.post("/{project_id}/submit", response_model=ProjectResponse)
async def submit_project(
    project_id: str,
    request: SubmitRequest,
    principal: Principal = Depends(require_creator),
    db: Session = Depends(get_tenant_db),
):
    return ProjectService(db).submit_project(
        project_id, principal.id, notes=request.notes, actor=actor_from(principal)
    )
