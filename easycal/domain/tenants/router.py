"""Tenant router - FastAPI endpoints for tenant administration"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Tenant
from .schemas import TenantCreate, TenantResponse, TenantStats, TenantUpdate
from .service import TenantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["Tenants"])


def get_tenant_service(db: Session = Depends(get_db)) -> TenantService:
    """Dependency injection for TenantService"""
    return TenantService(db)


def to_response(tenant: Tenant) -> TenantResponse:
    return TenantResponse(
        id=tenant.id,
        name=tenant.name,
        installContext=tenant.install_context,
        agencyId=tenant.agency_id,
        createdAt=tenant.created_at,
    )


@router.get("", response_model=list[TenantResponse])
async def get_tenants(
    agencyId: str = Query(...),
    service: TenantService = Depends(get_tenant_service),
):
    """Location tenants installed under an agency"""
    return [to_response(t) for t in service.get_tenants_by_agency(agencyId)]


@router.post("", response_model=TenantResponse, status_code=201)
async def create_tenant(data: TenantCreate, service: TenantService = Depends(get_tenant_service)):
    tenant = service.create_tenant(data.name, data.installContext, data.agencyId)
    return to_response(tenant)


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(tenant_id: str, service: TenantService = Depends(get_tenant_service)):
    return to_response(service.get_tenant(tenant_id))


@router.get("/{tenant_id}/stats", response_model=TenantStats)
async def get_tenant_stats(tenant_id: str, service: TenantService = Depends(get_tenant_service)):
    return service.get_tenant_stats(tenant_id)


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str,
    data: TenantUpdate,
    service: TenantService = Depends(get_tenant_service),
):
    updates = {
        "name": data.name,
        "install_context": data.installContext,
        "agency_id": data.agencyId,
    }
    tenant = service.update_tenant(tenant_id, **{k: v for k, v in updates.items() if v is not None})
    return to_response(tenant)


@router.delete("/{tenant_id}")
async def delete_tenant(tenant_id: str, service: TenantService = Depends(get_tenant_service)):
    """Uninstall: removes the tenant with its locations, tokens and jobs"""
    if not service.delete_tenant(tenant_id):
        return JSONResponse(status_code=404, content={"error": "Tenant not found"})
    return {"success": True, "tenantId": tenant_id}


@router.delete("/{tenant_id}/tokens")
async def disconnect_tenant(
    tenant_id: str,
    locationId: Optional[str] = Query(None),
    service: TenantService = Depends(get_tenant_service),
):
    """Forget stored tokens for the tenant, or only for one location"""
    service.get_tenant(tenant_id)
    deleted = service.disconnect(tenant_id, locationId)
    return {"success": True, "deleted": deleted}
