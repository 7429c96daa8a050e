"""
Tenant scoping for the SQLAlchemy session

Every tenant-owned table carries a ``tenant_slug`` column (TenantScopedMixin).
While a tenant is active on a session, ORM SELECTs are filtered to that tenant
and new rows are stamped with it before flush.
"""
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from sqlalchemy import Column, ForeignKey, String, event
from sqlalchemy.orm import Session, declared_attr, with_loader_criteria

from ..exceptions import TenantAccessError, TenantContextError

logger = logging.getLogger(__name__)

TENANT_INFO_KEY = "tenant_slug"

_current_tenant: ContextVar[Optional[str]] = ContextVar("tenant_slug", default=None)


class TenantScopedMixin:
    """Adds the tenant scoping column"""

    @declared_attr
    def tenant_slug(cls):
        return Column(String(64), ForeignKey("tenants.slug"), nullable=False, index=True)


def current_tenant(db: Optional[Session] = None) -> Optional[str]:
    """Tenant active on the session, falling back to the execution context"""
    if db is not None:
        tenant_slug = db.info.get(TENANT_INFO_KEY)
        if tenant_slug:
            return tenant_slug
    return _current_tenant.get()


def bind_tenant(db: Session, tenant_slug: Optional[str]) -> None:
    """Attach (or detach with None) a tenant to a session for its lifetime"""
    if tenant_slug is None:
        db.info.pop(TENANT_INFO_KEY, None)
    else:
        db.info[TENANT_INFO_KEY] = tenant_slug


@contextmanager
def tenant_context(tenant_slug: Optional[str]) -> Iterator[Optional[str]]:
    """Tag the execution context with a tenant for logs and session-less code"""
    previous = _current_tenant.get()
    _current_tenant.set(tenant_slug)
    try:
        yield tenant_slug
    finally:
        _current_tenant.set(previous)


@contextmanager
def with_tenant(db: Session, tenant_slug: str) -> Iterator[Session]:
    """
    Run a block of queries scoped to ``tenant_slug``

    Nesting is allowed; the previous tenant is restored on exit.
    """
    if not tenant_slug:
        raise TenantContextError("Tenant slug is required")

    previous = db.info.get(TENANT_INFO_KEY)
    bind_tenant(db, tenant_slug)
    token = _current_tenant.set(tenant_slug)
    try:
        yield db
    finally:
        _current_tenant.reset(token)
        bind_tenant(db, previous)


@event.listens_for(Session, "do_orm_execute")
def _scope_tenant_queries(execute_state) -> None:
    """Apply tenant criteria to every ORM SELECT touching scoped models"""
    if (
        not execute_state.is_select
        or execute_state.is_column_load
        or execute_state.is_relationship_load
    ):
        return

    tenant_slug = current_tenant(execute_state.session)
    if not tenant_slug:
        return

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(
            TenantScopedMixin,
            lambda cls: cls.tenant_slug == tenant_slug,
            include_aliases=True,
            track_closure_variables=True,
        )
    )


@event.listens_for(Session, "before_flush")
def _stamp_tenant_on_flush(session: Session, _flush_context, _instances) -> None:
    """Set the active tenant on new scoped objects and refuse cross-tenant writes"""
    tenant_slug = current_tenant(session)
    for obj in session.new:
        if not isinstance(obj, TenantScopedMixin):
            continue
        if not obj.tenant_slug:
            if not tenant_slug:
                raise TenantContextError(
                    f"Cannot insert {type(obj).__name__} without an active tenant"
                )
            obj.tenant_slug = tenant_slug
        elif tenant_slug and obj.tenant_slug != tenant_slug:
            logger.warning(
                f"Refusing to write {type(obj).__name__} for tenant {obj.tenant_slug} "
                f"inside tenant {tenant_slug}"
            )
            raise TenantAccessError("Cross-tenant write rejected")
