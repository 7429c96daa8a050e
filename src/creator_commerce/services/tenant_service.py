"""
Tenant Service
Registry of tenants; every scoped request first checks its tenant is active
"""
import logging
import re
from typing import List

from sqlalchemy.orm import Session

from ..db.models import Tenant, TenantStatus
from ..exceptions import ConflictError, NotFoundError, TenantAccessError, ValidationFailedError

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")


class TenantService:
    """Service for managing tenants"""

    def __init__(self, db: Session):
        self.db = db

    def create_tenant(self, slug: str, name: str) -> Tenant:
        slug = (slug or "").strip().lower()
        if not SLUG_PATTERN.match(slug):
            raise ValidationFailedError(
                "Tenant slug must be 2-63 characters of lowercase letters, digits or hyphens",
                details={"slug": slug},
            )
        if not name or not name.strip():
            raise ValidationFailedError("Tenant name is required")

        if self.db.query(Tenant).filter(Tenant.slug == slug).first():
            raise ConflictError(f"Tenant '{slug}' already exists")

        tenant = Tenant(slug=slug, name=name.strip(), status=TenantStatus.ACTIVE.value)
        self.db.add(tenant)
        self.db.commit()
        self.db.refresh(tenant)

        logger.info(f"Created tenant {slug}")
        return tenant

    def get_tenant(self, slug: str) -> Tenant:
        tenant = self.db.query(Tenant).filter(Tenant.slug == slug).first()
        if not tenant:
            raise NotFoundError(f"Tenant '{slug}' not found")
        return tenant

    def list_tenants(self, status: str = None) -> List[Tenant]:
        query = self.db.query(Tenant)
        if status:
            query = query.filter(Tenant.status == status)
        return query.order_by(Tenant.slug).all()

    def list_active_slugs(self) -> List[str]:
        rows = (
            self.db.query(Tenant.slug)
            .filter(Tenant.status == TenantStatus.ACTIVE.value)
            .order_by(Tenant.slug)
            .all()
        )
        return [row.slug for row in rows]

    def _set_status(self, slug: str, new_status: TenantStatus) -> Tenant:
        tenant = self.get_tenant(slug)
        if tenant.status != new_status.value:
            tenant.status = new_status.value
            self.db.commit()
            self.db.refresh(tenant)
            logger.info(f"Tenant {slug} is now {new_status.value}")
        return tenant

    def suspend_tenant(self, slug: str) -> Tenant:
        return self._set_status(slug, TenantStatus.SUSPENDED)

    def activate_tenant(self, slug: str) -> Tenant:
        return self._set_status(slug, TenantStatus.ACTIVE)

    def require_active_tenant(self, slug: str) -> Tenant:
        """Return the tenant or raise 404 (unknown) / 403 (suspended)"""
        tenant = self.get_tenant(slug)
        if tenant.status != TenantStatus.ACTIVE.value:
            raise TenantAccessError(f"Tenant '{slug}' is suspended")
        return tenant
