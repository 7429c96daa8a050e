"""
Tax form (1099) routes
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import actor_from, get_tenant_db
from .services.tax_form_service import TaxFormService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/tax/forms", tags=["tax"])

require_admin = require_role(Role.ADMIN)


class TaxFormCreateRequest(BaseModel):
    payee_id: str
    payee_type: str
    tax_year: int = Field(..., ge=2000, le=2100)
    form_type: str = "1099-NEC"
    recipient_name: str = Field(..., min_length=1, max_length=200)
    recipient_tin_last_four: Optional[str] = Field(None, min_length=4, max_length=4)
    total_amount_cents: int = Field(..., ge=0)
    box_amounts: Optional[Dict[str, int]] = None


class FileRequest(BaseModel):
    confirmation_number: str = Field(..., min_length=1, max_length=100)


class DeliverRequest(BaseModel):
    delivery_method: str = "email"


class VoidRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CorrectionRequest(BaseModel):
    correction_type: str
    changes: Dict[str, Any] = {}


class TaxFormResponse(BaseModel):
    id: str
    payee_id: str
    payee_type: str
    tax_year: int
    form_type: str
    recipient_name: str
    recipient_tin_last_four: Optional[str]
    total_amount_cents: int
    box_amounts: Optional[Dict[str, Any]]
    status: str
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    filed_at: Optional[datetime]
    confirmation_number: Optional[str]
    delivery_method: Optional[str]
    delivered_at: Optional[datetime]
    voided_at: Optional[datetime]
    original_form_id: Optional[str]
    correction_type: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[TaxFormResponse])
async def list_tax_forms(
    tax_year: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    payee_type: Optional[str] = None,
    form_type: Optional[str] = None,
    payee_id: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).list_forms(
        tax_year=tax_year, status=status_filter, payee_type=payee_type, form_type=form_type, payee_id=payee_id
    )


@router.post("", response_model=TaxFormResponse, status_code=status.HTTP_201_CREATED)
async def create_tax_form(
    request: TaxFormCreateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).create_form(**request.model_dump(), actor=actor_from(principal))


@router.get("/current", response_model=TaxFormResponse)
async def get_current_tax_form(
    payee_id: str,
    payee_type: str,
    tax_year: int,
    form_type: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    form = TaxFormService(db).get_current_form(payee_id, payee_type, tax_year, form_type)
    if form is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No current tax form for this payee")
    return form


@router.get("/approved", response_model=List[TaxFormResponse])
async def approved_tax_forms(
    tax_year: int,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).approved_forms(tax_year)


@router.get("/{form_id}", response_model=TaxFormResponse)
async def get_tax_form(
    form_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).get_form(form_id)


@router.post("/{form_id}/submit", response_model=TaxFormResponse)
async def submit_tax_form(
    form_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).submit_for_review(form_id, actor=actor_from(principal))


@router.post("/{form_id}/approve", response_model=TaxFormResponse)
async def approve_tax_form(
    form_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).approve(form_id, actor=actor_from(principal))


@router.post("/{form_id}/file", response_model=TaxFormResponse)
async def file_tax_form(
    form_id: str,
    request: FileRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).mark_filed(form_id, request.confirmation_number, actor=actor_from(principal))


@router.post("/{form_id}/deliver", response_model=TaxFormResponse)
async def deliver_tax_form(
    form_id: str,
    request: DeliverRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).mark_delivered(form_id, request.delivery_method, actor=actor_from(principal))


@router.post("/{form_id}/void", response_model=TaxFormResponse)
async def void_tax_form(
    form_id: str,
    request: VoidRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).void(form_id, reason=request.reason, actor=actor_from(principal))


@router.post("/{form_id}/correct", response_model=TaxFormResponse, status_code=status.HTTP_201_CREATED)
async def correct_tax_form(
    form_id: str,
    request: CorrectionRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return TaxFormService(db).create_correction(
        form_id, request.correction_type, request.changes, actor=actor_from(principal)
    )
