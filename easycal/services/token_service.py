"""
OAuth token storage and lookup
Stores tokens encrypted, refreshes expired ones and swaps agency tokens
for location tokens
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import TOKEN_RETENTION_DAYS
from ..domain.tenants.repository import LocationRepository, TokenRepository, is_placeholder_location
from ..encryption import decrypt_token, encrypt_token
from ..errors import AppError
from ..models import Token, utc_now
from .ghl_client import GHLClient

logger = logging.getLogger(__name__)

EXPIRY_BUFFER = timedelta(minutes=5)
DEFAULT_EXPIRES_IN = 86400


def expires_at_from(expires_in) -> datetime:
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        seconds = DEFAULT_EXPIRES_IN
    return utc_now() + timedelta(seconds=seconds)


def is_token_expired(token: Token, now: Optional[datetime] = None) -> bool:
    """True once the token is inside the 5 minute refresh buffer"""
    now = now or utc_now()
    return token.expires_at <= now + EXPIRY_BUFFER


def store_tokens(
    db: Session,
    tenant_id: str,
    location_id: Optional[str],
    token_data: dict,
    user_type: str = "Location",
    company_id: Optional[str] = None,
) -> Token:
    """Persist an OAuth token response"""
    logger.info(f"🔐 Storing encrypted tokens (tenant: {tenant_id}, location: {location_id or 'agency'})")
    return TokenRepository.create_token(
        db,
        tenant_id=tenant_id,
        location_id=location_id,
        access_token=encrypt_token(token_data["access_token"]),
        refresh_token=encrypt_token(token_data.get("refresh_token") or ""),
        scope=token_data.get("scope") or "",
        expires_at=expires_at_from(token_data.get("expires_in")),
        user_type=user_type,
        company_id=company_id,
    )


async def refresh_token_row(db: Session, token: Token, client: Optional[GHLClient] = None) -> Optional[str]:
    """Refresh an expired token in place; returns the new access token or None"""
    client = client or GHLClient()
    refresh_token = decrypt_token(token.refresh_token)
    try:
        new_tokens = await client.refresh_access_token(refresh_token)
    except (AppError, httpx.HTTPError) as e:
        logger.error(f"❌ Token refresh failed for token {token.id}: {e}")
        return None

    access_token = new_tokens.get("access_token")
    if not access_token:
        logger.error("❌ No access token in refresh response")
        return None

    TokenRepository.update_token(
        db,
        token,
        access_token=encrypt_token(access_token),
        # Keep the old refresh token when GHL does not rotate it
        refresh_token=encrypt_token(new_tokens.get("refresh_token") or refresh_token),
        expires_at=expires_at_from(new_tokens.get("expires_in")),
    )
    logger.info(f"✅ Token {token.id} refreshed")
    return access_token


def find_location_token(db: Session, location_id: str) -> Optional[Token]:
    """
    Token row to act for a location.

    A location's own token wins. A known location otherwise uses the
    token of the agency that owns it; only unknown locations fall back
    to the newest agency token of any tenant.
    """
    token = TokenRepository.get_token_for_location(db, location_id)
    if token:
        return token

    location = LocationRepository.get_location(db, location_id)
    if location:
        agency_id = location.tenant.agency_id if location.tenant else None
        logger.info(f"🔎 No direct token for {location_id}, trying its agency token ({agency_id})")
        return TokenRepository.get_agency_token(db, tenant_id=location.tenant_id, company_id=agency_id)

    logger.info(f"🔎 No direct token for {location_id}, trying agency token")
    return TokenRepository.get_agency_token(db)


async def get_location_access_token(
    db: Session, location_id: str, client: Optional[GHLClient] = None
) -> Optional[str]:
    """
    Resolve a usable access token for a location.

    Locations without a token of their own (agency installs, placeholder
    ids) fall back to an agency token (see find_location_token), which is
    then exchanged for a location token. Expired tokens are refreshed first.
    Returns None when no usable token can be produced.
    """
    token = find_location_token(db, location_id)
    if not token:
        logger.warning(f"⚠️ No token found for location {location_id}")
        return None

    try:
        if is_token_expired(token):
            logger.info(f"🔄 Token expired for location {location_id}, refreshing...")
            access_token = await refresh_token_row(db, token, client)
            if not access_token:
                return None
        else:
            access_token = decrypt_token(token.access_token)
    except AppError as e:
        logger.error(f"❌ Could not read token for location {location_id}: {e.message}")
        return None

    if token.user_type == "Company" and token.company_id:
        if is_placeholder_location(location_id):
            logger.error("❌ Cannot use agency token without a real location ID")
            return None
        agency_client = GHLClient(access_token, transport=client.transport if client else None)
        try:
            location_tokens = await agency_client.get_location_token(token.company_id, location_id)
        except (AppError, httpx.HTTPError) as e:
            logger.error(f"❌ Failed to get location token from agency token: {e}")
            return None
        return location_tokens.get("access_token")

    return access_token


def cleanup_expired_tokens(db: Session, retention_days: int = TOKEN_RETENTION_DAYS) -> int:
    """Purge token rows expired for longer than retention_days"""
    cutoff = utc_now() - timedelta(days=retention_days)
    deleted = TokenRepository.delete_expired(db, cutoff)
    if deleted:
        logger.info(f"🧹 Removed {deleted} token(s) expired before {cutoff.isoformat()}")
    return deleted
