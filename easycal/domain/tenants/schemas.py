"""Tenant domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TenantCreate(BaseModel):
    """Schema for registering a tenant outside the OAuth flow"""

    name: str
    installContext: str
    agencyId: Optional[str] = None


class TenantUpdate(BaseModel):
    name: Optional[str] = None
    installContext: Optional[str] = None
    agencyId: Optional[str] = None


class TenantResponse(BaseModel):
    id: str
    name: str
    installContext: str
    agencyId: Optional[str]
    createdAt: datetime


class TenantStats(BaseModel):
    locations: int
    activeTokens: int
    jobs: int
