"""Tenant service - Business logic for tenants and their locations"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import AppError, ErrorCode
from ...models import Tenant
from .repository import TenantRepository, TokenRepository

logger = logging.getLogger(__name__)

INSTALL_CONTEXTS = ("agency", "location")


class TenantService:
    """Service layer for tenant business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TenantRepository()

    def create_tenant(
        self, name: str, install_context: str, agency_id: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> Tenant:
        logger.info(f"📥 Creating tenant '{name}' ({install_context})")

        if install_context not in INSTALL_CONTEXTS:
            raise AppError(
                "Invalid installation context",
                ErrorCode.VALIDATION_FAILED,
                400,
                {"installContext": install_context},
                "TenantOperations",
            )

        if install_context == "location" and not agency_id:
            raise AppError(
                "Agency ID is required for location-level installs",
                ErrorCode.VALIDATION_FAILED,
                400,
                {"installContext": install_context},
                "TenantOperations",
            )

        data = {"name": name, "install_context": install_context, "agency_id": agency_id}
        if tenant_id:
            data["id"] = tenant_id
        try:
            tenant = self.repo.create_tenant(self.db, **data)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create tenant: {e}")
            raise AppError(
                "Database error creating tenant", ErrorCode.DB_QUERY_FAILED, 500, str(e), "TenantOperations"
            ) from e

        logger.info(f"✅ Tenant created: {tenant.id}")
        return tenant

    def get_or_create_tenant(self, name: str, install_context: str, agency_id: Optional[str]) -> Tenant:
        """Reuse the tenant from an earlier install of the same agency/context"""
        if agency_id:
            tenant = self.repo.find_tenant(self.db, install_context, agency_id)
            if tenant:
                return tenant
        return self.create_tenant(name, install_context, agency_id)

    def get_tenant(self, tenant_id: str) -> Tenant:
        tenant = self.repo.get_tenant(self.db, tenant_id)
        if not tenant:
            raise AppError("Tenant not found", ErrorCode.API_NOT_FOUND, 404, {"tenantId": tenant_id})
        return tenant

    def get_tenants_by_agency(self, agency_id: str) -> list[Tenant]:
        return self.repo.get_tenants_by_agency(self.db, agency_id)

    def update_tenant(self, tenant_id: str, **updates) -> Tenant:
        tenant = self.repo.get_tenant(self.db, tenant_id)
        if not tenant:
            raise AppError(
                "Tenant not found for update",
                ErrorCode.API_NOT_FOUND,
                404,
                {"tenantId": tenant_id},
                "TenantOperations",
            )
        if "install_context" in updates and updates["install_context"] not in INSTALL_CONTEXTS:
            raise AppError("Invalid installation context", ErrorCode.VALIDATION_FAILED, 400)
        logger.info(f"✏️ Updating tenant {tenant_id}")
        return self.repo.update_tenant(self.db, tenant, **updates)

    def delete_tenant(self, tenant_id: str) -> bool:
        """Delete a tenant and, by cascade, its locations, tokens and jobs"""
        tenant = self.repo.get_tenant(self.db, tenant_id)
        if not tenant:
            logger.warning(f"⚠️ Tenant not found for deletion: {tenant_id}")
            return False
        self.repo.delete_tenant(self.db, tenant)
        logger.info(f"🗑️ Tenant deleted: {tenant_id}")
        return True

    def get_tenant_stats(self, tenant_id: str) -> dict:
        self.get_tenant(tenant_id)
        return self.repo.get_stats(self.db, tenant_id)

    def disconnect(self, tenant_id: str, location_id: Optional[str] = None) -> int:
        """Remove stored tokens for a tenant, or for one of its locations"""
        deleted = TokenRepository.delete_tokens(self.db, tenant_id, location_id)
        logger.info(f"🔌 Removed {deleted} token(s) for tenant {tenant_id}")
        return deleted
