"""
Subscription routes: admin management and customer self-service
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .auth import Principal, Role, require_role
from .dependencies import actor_from, get_tenant_db
from .services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/subscriptions", tags=["subscriptions"])
account_router = APIRouter(prefix="/api/account/subscriptions", tags=["account"])

require_admin = require_role(Role.ADMIN)
require_customer = require_role(Role.CUSTOMER)


class SubscriptionCreateRequest(BaseModel):
    customer_id: str
    customer_email: str
    customer_name: Optional[str] = None
    product_id: str
    product_title: str
    variant_title: Optional[str] = None
    quantity: int = Field(1, ge=1)
    price_cents: int = Field(..., ge=0)
    discount_cents: int = Field(0, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    frequency: str = "monthly"
    frequency_interval: int = Field(1, ge=1)
    start_date: Optional[date] = None
    metadata: Optional[Dict[str, Any]] = None


class PauseRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    resume_date: Optional[date] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RescheduleRequest(BaseModel):
    next_billing_date: date


class FrequencyRequest(BaseModel):
    frequency: str
    frequency_interval: int = Field(1, ge=1)


class QuantityRequest(BaseModel):
    quantity: int = Field(..., ge=1)


class SettingsUpdateRequest(BaseModel):
    max_pause_days: Optional[int] = Field(None, ge=1)
    max_skips_per_year: Optional[int] = Field(None, ge=0)
    allow_customer_cancel: Optional[bool] = None
    allow_customer_pause: Optional[bool] = None
    allow_skip_orders: Optional[bool] = None
    allow_frequency_changes: Optional[bool] = None
    allow_quantity_changes: Optional[bool] = None


class SubscriptionResponse(BaseModel):
    id: str
    customer_id: str
    customer_email: str
    customer_name: Optional[str]
    product_id: str
    product_title: str
    variant_title: Optional[str]
    quantity: int
    price_cents: int
    discount_cents: int
    currency: str
    frequency: str
    frequency_interval: int
    status: str
    pause_reason: Optional[str]
    cancel_reason: Optional[str]
    paused_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    auto_resume_at: Optional[datetime]
    next_billing_date: Optional[date]
    last_billing_date: Optional[date]
    total_orders: int
    total_spent_cents: int
    skipped_orders: int
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra_metadata")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SubscriptionListResponse(BaseModel):
    items: List[SubscriptionResponse]
    total: int
    limit: int
    offset: int


class ActivityResponse(BaseModel):
    id: str
    activity_type: str
    description: Optional[str]
    actor_type: str
    actor_id: Optional[str]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra_metadata")
    created_at: datetime

    class Config:
        from_attributes = True


class SettingsResponse(BaseModel):
    max_pause_days: int
    max_skips_per_year: int
    allow_customer_cancel: bool
    allow_customer_pause: bool
    allow_skip_orders: bool
    allow_frequency_changes: bool
    allow_quantity_changes: bool

    class Config:
        from_attributes = True


class SubscriptionStatsResponse(BaseModel):
    counts: Dict[str, int]
    mrr_cents: int


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------

@router.get("", response_model=SubscriptionListResponse)
async def list_subscriptions(
    status_filter: Optional[str] = Query(None, alias="status"),
    product_id: Optional[str] = None,
    frequency: Optional[str] = None,
    search: Optional[str] = None,
    created_from: Optional[date] = None,
    created_to: Optional[date] = None,
    sort: str = "created_at",
    dir: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    """List subscriptions with filters; unknown sort fields fall back to created_at"""
    items, total = SubscriptionService(db).list_subscriptions(
        status=status_filter,
        product_id=product_id,
        frequency=frequency,
        search=search,
        created_from=created_from,
        created_to=created_to,
        sort_by=sort,
        sort_dir=dir,
        limit=limit,
        offset=offset,
    )
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.post("", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    request: SubscriptionCreateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).create_subscription(**request.model_dump(), actor=actor_from(principal))


@router.get("/stats", response_model=SubscriptionStatsResponse)
async def subscription_stats(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    service = SubscriptionService(db)
    return {"counts": service.status_counts(), "mrr_cents": service.mrr_cents()}


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).get_settings()


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    request: SettingsUpdateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).update_settings(request.model_dump(exclude_none=True))


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(
    subscription_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).get_subscription(subscription_id)


@router.get("/{subscription_id}/activity", response_model=List[ActivityResponse])
async def get_subscription_activity(
    subscription_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).get_activity(subscription_id)


@router.post("/{subscription_id}/pause", response_model=SubscriptionResponse)
async def pause_subscription(
    subscription_id: str,
    request: PauseRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).pause(
        subscription_id, reason=request.reason, resume_date=request.resume_date, actor=actor_from(principal)
    )


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume_subscription(
    subscription_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).resume(subscription_id, actor=actor_from(principal))


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: str,
    request: CancelRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).cancel(subscription_id, reason=request.reason, actor=actor_from(principal))


@router.post("/{subscription_id}/skip", response_model=SubscriptionResponse)
async def skip_next_order(
    subscription_id: str,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).skip_next_order(subscription_id, actor=actor_from(principal))


@router.post("/{subscription_id}/reschedule", response_model=SubscriptionResponse)
async def reschedule_subscription(
    subscription_id: str,
    request: RescheduleRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).reschedule(
        subscription_id, request.next_billing_date, actor=actor_from(principal)
    )


@router.post("/{subscription_id}/frequency", response_model=SubscriptionResponse)
async def update_frequency(
    subscription_id: str,
    request: FrequencyRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).update_frequency(
        subscription_id, request.frequency, request.frequency_interval, actor=actor_from(principal)
    )


@router.post("/{subscription_id}/quantity", response_model=SubscriptionResponse)
async def update_quantity(
    subscription_id: str,
    request: QuantityRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).update_quantity(subscription_id, request.quantity, actor=actor_from(principal))


# ----------------------------------------------------------------------
# Customer self-service
# ----------------------------------------------------------------------

@account_router.get("", response_model=List[SubscriptionResponse])
async def list_my_subscriptions(
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    items, _ = SubscriptionService(db).list_subscriptions(customer_id=principal.id, limit=200)
    return items


@account_router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_my_subscription(
    subscription_id: str,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).get_customer_subscription(principal.id, subscription_id)


@account_router.post("/{subscription_id}/pause", response_model=SubscriptionResponse)
async def pause_my_subscription(
    subscription_id: str,
    request: PauseRequest,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_pause(
        principal.id, subscription_id, reason=request.reason, resume_date=request.resume_date,
        actor=actor_from(principal),
    )


@account_router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume_my_subscription(
    subscription_id: str,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_resume(principal.id, subscription_id, actor=actor_from(principal))


@account_router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_my_subscription(
    subscription_id: str,
    request: CancelRequest,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_cancel(
        principal.id, subscription_id, reason=request.reason, actor=actor_from(principal)
    )


@account_router.post("/{subscription_id}/skip", response_model=SubscriptionResponse)
async def skip_my_next_order(
    subscription_id: str,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_skip(principal.id, subscription_id, actor=actor_from(principal))


@account_router.post("/{subscription_id}/reschedule", response_model=SubscriptionResponse)
async def reschedule_my_subscription(
    subscription_id: str,
    request: RescheduleRequest,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_reschedule(
        principal.id, subscription_id, request.next_billing_date, actor=actor_from(principal)
    )


@account_router.post("/{subscription_id}/frequency", response_model=SubscriptionResponse)
async def change_my_frequency(
    subscription_id: str,
    request: FrequencyRequest,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_update_frequency(
        principal.id, subscription_id, request.frequency, request.frequency_interval,
        actor=actor_from(principal),
    )


@account_router.post("/{subscription_id}/quantity", response_model=SubscriptionResponse)
async def change_my_quantity(
    subscription_id: str,
    request: QuantityRequest,
    principal: Principal = Depends(require_customer),
    db: Session = Depends(get_tenant_db),
):
    return SubscriptionService(db).customer_update_quantity(
        principal.id, subscription_id, request.quantity, actor=actor_from(principal)
    )
