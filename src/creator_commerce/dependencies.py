"""
Shared FastAPI dependencies: tenant-scoped sessions and actors
"""
import logging
from typing import AsyncGenerator, Generator, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from .auth import Principal, get_current_principal
from .db.engine import get_db
from .db.tenancy import bind_tenant, tenant_context
from .exceptions import TenantAccessError
from .services.audit_log_service import Actor
from .services.tenant_service import TenantService

logger = logging.getLogger(__name__)


# Async so the context variable is set on the request task, not a worker thread
async def request_tenant(
    principal: Principal = Depends(get_current_principal),
) -> AsyncGenerator[Optional[str], None]:
    with tenant_context(principal.tenant_slug):
        yield principal.tenant_slug


async def public_request_tenant(tenant: str) -> AsyncGenerator[str, None]:
    with tenant_context(tenant):
        yield tenant


def _scoped(db: Session, tenant_slug: str) -> Generator[Session, None, None]:
    TenantService(db).require_active_tenant(tenant_slug)
    bind_tenant(db, tenant_slug)
    try:
        yield db
    finally:
        bind_tenant(db, None)


def get_tenant_db(
    tenant_slug: Optional[str] = Depends(request_tenant),
    db: Session = Depends(get_db),
) -> Generator[Session, None, None]:
    """
    Session scoped to the caller's tenant
    Use as FastAPI dependency: db: Session = Depends(get_tenant_db)
    """
    if not tenant_slug:
        raise TenantAccessError("This token is not bound to a tenant")
    yield from _scoped(db, tenant_slug)


def get_public_tenant_db(
    tenant: str = Depends(public_request_tenant),
    db: Session = Depends(get_db),
) -> Generator[Session, None, None]:
    """Session scoped to the tenant named in the URL (unauthenticated signer links)"""
    yield from _scoped(db, tenant)


def actor_from(principal: Principal) -> Actor:
    return Actor(principal.actor_type, principal.id, principal.name)
