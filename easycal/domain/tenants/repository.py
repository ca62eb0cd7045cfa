"""Tenant, location and token repositories - Database operations"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Job, Location, Tenant, Token, utc_now

PLACEHOLDER_LOCATION_PREFIXES = ("temp_", "agency_")


def is_placeholder_location(location_id: Optional[str]) -> bool:
    """Ids the frontend uses before a real sub-account is chosen"""
    if not location_id:
        return True
    return location_id == "temp_location" or location_id.startswith(PLACEHOLDER_LOCATION_PREFIXES)


class TenantRepository:
    """Repository for tenant database operations"""

    @staticmethod
    def get_tenant(db: Session, tenant_id: str) -> Optional[Tenant]:
        return db.query(Tenant).filter(Tenant.id == tenant_id).first()

    @staticmethod
    def get_tenants_by_agency(db: Session, agency_id: str) -> list[Tenant]:
        """Location-level tenants installed under an agency"""
        return (
            db.query(Tenant)
            .filter(Tenant.install_context == "location", Tenant.agency_id == agency_id)
            .order_by(Tenant.created_at.desc())
            .all()
        )

    @staticmethod
    def find_tenant(db: Session, install_context: str, agency_id: Optional[str]) -> Optional[Tenant]:
        return (
            db.query(Tenant)
            .filter(Tenant.install_context == install_context, Tenant.agency_id == agency_id)
            .order_by(Tenant.created_at.desc())
            .first()
        )

    @staticmethod
    def create_tenant(db: Session, **tenant_data) -> Tenant:
        tenant = Tenant(**tenant_data)
        db.add(tenant)
        db.commit()
        db.refresh(tenant)
        return tenant

    @staticmethod
    def update_tenant(db: Session, tenant: Tenant, **updates) -> Tenant:
        for key, value in updates.items():
            if value is not None and hasattr(tenant, key) and key not in ("id", "created_at"):
                setattr(tenant, key, value)
        db.commit()
        db.refresh(tenant)
        return tenant

    @staticmethod
    def delete_tenant(db: Session, tenant: Tenant) -> None:
        db.delete(tenant)
        db.commit()

    @staticmethod
    def get_stats(db: Session, tenant_id: str) -> dict:
        now = utc_now()
        return {
            "locations": db.query(func.count(Location.id)).filter(Location.tenant_id == tenant_id).scalar(),
            "activeTokens": db.query(func.count(Token.id))
            .filter(Token.tenant_id == tenant_id, Token.expires_at > now)
            .scalar(),
            "jobs": db.query(func.count(Job.id)).filter(Job.tenant_id == tenant_id).scalar(),
        }


class LocationRepository:
    """Repository for location database operations"""

    @staticmethod
    def get_location(db: Session, location_id: str) -> Optional[Location]:
        return db.query(Location).filter(Location.id == location_id).first()

    @staticmethod
    def get_locations(db: Session, tenant_id: str, enabled_only: bool = True) -> list[Location]:
        query = db.query(Location).filter(Location.tenant_id == tenant_id)
        if enabled_only:
            query = query.filter(Location.is_enabled.is_(True))
        return query.order_by(Location.name).all()

    @staticmethod
    def upsert_location(
        db: Session, location_id: str, tenant_id: str, name: str, time_zone: str
    ) -> Location:
        location = db.query(Location).filter(Location.id == location_id).first()
        if location:
            location.tenant_id = tenant_id
            location.name = name or location.name
            location.time_zone = time_zone or location.time_zone
            location.is_enabled = True
        else:
            location = Location(
                id=location_id, tenant_id=tenant_id, name=name, time_zone=time_zone, is_enabled=True
            )
            db.add(location)
        db.commit()
        db.refresh(location)
        return location


class TokenRepository:
    """Repository for OAuth token rows (values stored encrypted)"""

    @staticmethod
    def create_token(db: Session, **token_data) -> Token:
        token = Token(**token_data)
        db.add(token)
        db.commit()
        db.refresh(token)
        return token

    @staticmethod
    def get_token_for_location(db: Session, location_id: str) -> Optional[Token]:
        return (
            db.query(Token)
            .filter(Token.location_id == location_id)
            .order_by(Token.expires_at.desc())
            .first()
        )

    @staticmethod
    def get_agency_token(
        db: Session, tenant_id: Optional[str] = None, company_id: Optional[str] = None
    ) -> Optional[Token]:
        """
        Newest agency-level token.
        With tenant_id or company_id only tokens of that agency match,
        otherwise any tenant's agency token does.
        """
        query = db.query(Token).filter(Token.user_type == "Company", Token.location_id.is_(None))
        owners = []
        if tenant_id:
            owners.append(Token.tenant_id == tenant_id)
        if company_id:
            owners.append(Token.company_id == company_id)
        if owners:
            query = query.filter(or_(*owners))
        return query.order_by(Token.expires_at.desc()).first()

    @staticmethod
    def get_valid_tokens(db: Session, now: datetime) -> list[Token]:
        return (
            db.query(Token)
            .filter(Token.expires_at > now)
            .order_by(Token.expires_at.desc())
            .all()
        )

    @staticmethod
    def update_token(db: Session, token: Token, **updates) -> Token:
        for key, value in updates.items():
            if value is not None and hasattr(token, key):
                setattr(token, key, value)
        db.commit()
        db.refresh(token)
        return token

    @staticmethod
    def delete_tokens(db: Session, tenant_id: str, location_id: Optional[str] = None) -> int:
        query = db.query(Token).filter(Token.tenant_id == tenant_id)
        if location_id:
            query = query.filter(Token.location_id == location_id)
        deleted = query.delete(synchronize_session=False)
        db.commit()
        return deleted

    @staticmethod
    def delete_expired(db: Session, cutoff: datetime) -> int:
        """Delete tokens whose access token expired before cutoff"""
        deleted = db.query(Token).filter(Token.expires_at < cutoff).delete(synchronize_session=False)
        db.commit()
        return deleted
