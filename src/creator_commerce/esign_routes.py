"""
E-signature routes: admin document management and public signer links
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import actor_from, get_public_tenant_db, get_tenant_db
from .services.esign_service import EsignService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/esign/documents", tags=["esign"])
public_router = APIRouter(prefix="/api/public/{tenant}/sign", tags=["signing"])

require_admin = require_role(Role.ADMIN)


class SignerInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    role: str = "signer"
    signing_order: int = Field(1, ge=1)


class DocumentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    message: Optional[str] = None
    creator_id: Optional[str] = None
    file_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    signers: List[SignerInput] = Field(..., min_length=1)


class VoidRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SignRequest(BaseModel):
    signature_type: str
    signature_data: str = Field(..., min_length=1)


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SignerResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    signing_order: int
    status: str
    access_token: str
    viewed_at: Optional[datetime]
    signed_at: Optional[datetime]
    declined_at: Optional[datetime]
    decline_reason: Optional[str]

    class Config:
        from_attributes = True


class DocumentResponse(BaseModel):
    id: str
    name: str
    message: Optional[str]
    creator_id: Optional[str]
    file_url: Optional[str]
    status: str
    expires_at: Optional[datetime]
    sent_at: Optional[datetime]
    completed_at: Optional[datetime]
    voided_at: Optional[datetime]
    voided_reason: Optional[str]
    created_at: datetime
    signers: List[SignerResponse] = []

    class Config:
        from_attributes = True


class AuditEntryResponse(BaseModel):
    id: str
    signer_id: Optional[str]
    action: str
    performed_by: Optional[str]
    details: Optional[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


class PublicSignerResponse(BaseModel):
    name: str
    email: str
    role: str
    status: str

    class Config:
        from_attributes = True


class PublicDocumentResponse(BaseModel):
    name: str
    message: Optional[str]
    file_url: Optional[str]
    status: str
    expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class SigningSessionResponse(BaseModel):
    document: PublicDocumentResponse
    signer: PublicSignerResponse


def _client_details(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------

@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    status_filter: Optional[str] = Query(None, alias="status"),
    creator_id: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).list_documents(status=status_filter, creator_id=creator_id)


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    request: DocumentCreateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).create_document(
        name=request.name,
        signers=[s.model_dump() for s in request.signers],
        message=request.message,
        creator_id=request.creator_id,
        file_url=request.file_url,
        expires_at=request.expires_at,
        actor=actor_from(principal),
    )


@router.get("/counts", response_model=Dict[str, int])
async def document_counts(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).document_counts()


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).get_document(document_id)


@router.post("/{document_id}/send", response_model=DocumentResponse)
async def send_document(
    document_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).send_document(document_id, actor=actor_from(principal))


@router.post("/{document_id}/void", response_model=DocumentResponse)
async def void_document(
    document_id: str,
    request: VoidRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).void_document(document_id, reason=request.reason, actor=actor_from(principal))


@router.get("/{document_id}/audit", response_model=List[AuditEntryResponse])
async def document_audit_log(
    document_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return EsignService(db).get_audit_log(document_id)


@router.get("/{document_id}/next-signers", response_model=List[SignerResponse])
async def next_signers(
    document_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    service = EsignService(db)
    service.get_document(document_id)
    return service.next_signers(document_id)


# ----------------------------------------------------------------------
# Public signer links
# ----------------------------------------------------------------------

@public_router.get("/{token}", response_model=SigningSessionResponse)
async def get_signing_session(token: str, db: Session = Depends(get_public_tenant_db)):
    session = EsignService(db).get_signing_session(token)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Signing link is invalid, expired or not yet active",
        )
    return {"document": session.document, "signer": session.signer}


@public_router.post("/{token}/view", response_model=PublicSignerResponse)
async def mark_viewed(token: str, request: Request, db: Session = Depends(get_public_tenant_db)):
    ip_address, user_agent = _client_details(request)
    return EsignService(db).mark_viewed(token, ip_address=ip_address, user_agent=user_agent)


@public_router.post("/{token}/sign", response_model=PublicDocumentResponse)
async def sign_document(
    token: str,
    body: SignRequest,
    request: Request,
    db: Session = Depends(get_public_tenant_db),
):
    ip_address, user_agent = _client_details(request)
    return EsignService(db).sign(
        token, body.signature_type, body.signature_data, ip_address=ip_address, user_agent=user_agent
    )


@public_router.post("/{token}/decline", response_model=PublicDocumentResponse)
async def decline_document(
    token: str,
    body: DeclineRequest,
    request: Request,
    db: Session = Depends(get_public_tenant_db),
):
    ip_address, user_agent = _client_details(request)
    return EsignService(db).decline(token, reason=body.reason, ip_address=ip_address, user_agent=user_agent)
