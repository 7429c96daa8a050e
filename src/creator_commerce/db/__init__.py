"""
Database module for the Creator Commerce platform
"""
from .base import Base, JSONType, TimestampMixin, new_id, to_utc_naive, utcnow
from .engine import SessionLocal, engine, get_db, init_db
from .tenancy import TenantScopedMixin, bind_tenant, current_tenant, tenant_context, with_tenant

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "Base",
    "JSONType",
    "TimestampMixin",
    "TenantScopedMixin",
    "bind_tenant",
    "current_tenant",
    "new_id",
    "tenant_context",
    "to_utc_naive",
    "utcnow",
    "with_tenant",
]
