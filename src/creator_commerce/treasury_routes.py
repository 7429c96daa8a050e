"""
Treasury draw request routes
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import actor_from, get_tenant_db
from .services.draw_request_service import DrawRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/treasury/draw-requests", tags=["treasury"])

require_admin = require_role(Role.ADMIN)


class DrawRequestCreateRequest(BaseModel):
    amount_cents: int = Field(..., gt=0, description="Amount in minor units")
    currency: str = Field("USD", min_length=3, max_length=3)
    reason: Optional[str] = Field(None, max_length=1000)
    destination_account_id: Optional[str] = None
    auto_send: bool = False


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class CompleteRequest(BaseModel):
    transfer_reference: str = Field(..., min_length=1, max_length=100)


class FailRequest(BaseModel):
    error_message: str = Field(..., min_length=1)


class DrawRequestResponse(BaseModel):
    id: str
    amount_cents: int
    currency: str
    reason: Optional[str]
    requested_by: str
    requester_name: Optional[str]
    destination_account_id: Optional[str]
    auto_send: bool
    status: str
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]
    rejected_reason: Optional[str]
    processed_at: Optional[datetime]
    transfer_reference: Optional[str]
    error_message: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[DrawRequestResponse])
async def list_draw_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).list_draw_requests(status=status_filter)


@router.post("", response_model=DrawRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_draw_request(
    request: DrawRequestCreateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).create_draw_request(
        **request.model_dump(),
        requested_by=principal.id,
        requester_name=principal.name,
        actor=actor_from(principal),
    )


@router.get("/awaiting-processing", response_model=List[DrawRequestResponse])
async def approved_awaiting_processing(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).approved_awaiting_processing()


@router.get("/{draw_request_id}", response_model=DrawRequestResponse)
async def get_draw_request(
    draw_request_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).get_draw_request(draw_request_id)


@router.post("/{draw_request_id}/request-approval", response_model=DrawRequestResponse)
async def request_approval(
    draw_request_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).mark_pending_approval(draw_request_id, actor=actor_from(principal))


@router.post("/{draw_request_id}/approve", response_model=DrawRequestResponse)
async def approve_draw_request(
    draw_request_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).approve(draw_request_id, approver=actor_from(principal))


@router.post("/{draw_request_id}/reject", response_model=DrawRequestResponse)
async def reject_draw_request(
    draw_request_id: str,
    request: RejectRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).reject(draw_request_id, approver=actor_from(principal), reason=request.reason)


@router.post("/{draw_request_id}/complete", response_model=DrawRequestResponse)
async def complete_draw_request(
    draw_request_id: str,
    request: CompleteRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).complete(
        draw_request_id, request.transfer_reference, actor=actor_from(principal)
    )


@router.post("/{draw_request_id}/fail", response_model=DrawRequestResponse)
async def fail_draw_request(
    draw_request_id: str,
    request: FailRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return DrawRequestService(db).fail(draw_request_id, request.error_message, actor=actor_from(principal))
