"""OAuth service - GHL marketplace install and callback handling"""

import logging
import secrets
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ...config import (
    DEFAULT_TIMEZONE,
    GHL_MARKETPLACE_URL,
    HL_CLIENT_ID,
    OAUTH_REDIRECT_URL,
    OAUTH_STATE_TTL_SECONDS,
)
from ...errors import AppError, GHLAPIError
from ...kv import KVStore, oauth_state_key
from ...services.ghl_client import GHLClient
from ...services.token_service import store_tokens
from ..tenants.repository import LocationRepository
from ..tenants.service import TenantService

logger = logging.getLogger(__name__)

BASE_SCOPES = [
    "calendars.readonly",
    "calendars.write",
    "calendars/groups.write",
    "calendars/groups.readonly",
    "calendars/events.readonly",
    "calendars/events.write",
    "locations.readonly",
    "locations.write",
    "locations/customFields.readonly",
    "locations/customFields.write",
]
AGENCY_SCOPES = ["oauth.readonly", "oauth.write"]

AGENCY_TENANT_NAME = "Agency Installation"
LOCATION_TENANT_NAME = "Location Installation"


class InstallError(Exception):
    """Callback could not complete; rendered as an HTML error page"""

    def __init__(self, title: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.title = title
        self.message = message
        self.status_code = status_code


@dataclass
class InstallResult:
    redirect_url: str
    message: str
    location_id: Optional[str] = None
    company_id: Optional[str] = None
    is_agency: bool = False


def build_scopes(install_type: str) -> list[str]:
    scopes = list(BASE_SCOPES)
    if install_type == "agency":
        scopes.extend(AGENCY_SCOPES)
    return scopes


class OAuthService:
    def __init__(self, db: Session, kv: KVStore, client: Optional[GHLClient] = None):
        self.db = db
        self.kv = kv
        self.client = client or GHLClient()
        self.tenants = TenantService(db)

    def build_install_url(self, install_type: str = "location") -> str:
        """Authorization URL for the marketplace location chooser; remembers the state"""
        if install_type not in ("location", "agency"):
            install_type = "location"
        state = secrets.token_urlsafe(16)
        self.kv.put_json(oauth_state_key(state), {"type": install_type}, ttl=OAUTH_STATE_TTL_SECONDS)

        params = {
            "response_type": "code",
            "client_id": HL_CLIENT_ID,
            "redirect_uri": OAUTH_REDIRECT_URL,
            "scope": " ".join(build_scopes(install_type)),
            "state": state,
        }
        logger.info(f"🔗 Generated {install_type} install URL")
        return f"{GHL_MARKETPLACE_URL}/oauth/chooselocation?{urlencode(params)}"

    def consume_state(self, state: str) -> dict:
        """Single-use state check"""
        key = oauth_state_key(state)
        stored = self.kv.get_json(key)
        if stored is None:
            logger.warning("⚠️ OAuth callback with unknown or expired state")
            raise InstallError("Authorization Failed", "Invalid or expired state parameter")
        self.kv.delete(key)
        return stored

    async def exchange_code(self, code: str) -> dict:
        try:
            return await self.client.exchange_code(code)
        except AppError as e:
            message = e.upstream_message() if isinstance(e, GHLAPIError) else e.message
            logger.error(f"❌ Token exchange failed: {message}")
            raise InstallError("Token Exchange Failed", f"Error: {message}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Token exchange request failed: {e}")
            raise InstallError("Token Exchange Failed", f"Error: {e}") from e

    async def complete_install(self, code: str, state: Optional[str] = None) -> InstallResult:
        if state:
            self.consume_state(state)

        token_data = await self.exchange_code(code)
        location_id = token_data.get("locationId")
        user_type = token_data.get("userType") or "Location"
        company_id = token_data.get("companyId")
        is_bulk = bool(token_data.get("isBulkInstallation"))

        logger.info(
            f"📥 OAuth tokens received (userType: {user_type}, locationId: {location_id}, "
            f"companyId: {company_id}, bulk: {is_bulk})"
        )

        if not location_id and (user_type == "Company" or is_bulk):
            return await self._install_agency(token_data, company_id)

        if not location_id:
            logger.error("❌ No location ID found in token response")
            raise InstallError(
                "Installation Error",
                "Unable to determine location context. Please try installing from within a specific location.",
            )

        return await self._install_location(token_data, location_id, company_id, user_type)

    async def _install_agency(self, token_data: dict, company_id: Optional[str]) -> InstallResult:
        tenant = self.tenants.get_or_create_tenant(AGENCY_TENANT_NAME, "agency", company_id)
        store_tokens(
            self.db, tenant.id, None, token_data, user_type="Company", company_id=company_id
        )
        await self._sync_agency_locations(tenant.id, company_id, token_data["access_token"])
        logger.info(f"✅ Agency installation complete for company {company_id}")
        return InstallResult(
            redirect_url=f"/?{urlencode({'companyId': company_id or '', 'userType': 'agency'})}",
            message="Agency-level installation complete! Redirecting...",
            company_id=company_id,
            is_agency=True,
        )

    async def _sync_agency_locations(self, tenant_id: str, company_id: Optional[str], access_token: str) -> None:
        """Record the agency's sub-accounts; install still succeeds without them"""
        if not company_id:
            return
        agency_client = GHLClient(access_token, transport=self.client.transport)
        try:
            locations = await agency_client.list_locations(company_id)
        except (AppError, httpx.HTTPError) as e:
            logger.warning(f"⚠️ Could not list agency locations for {company_id}: {e}")
            return
        for location in locations:
            if not location.get("id"):
                continue
            LocationRepository.upsert_location(
                self.db,
                location["id"],
                tenant_id,
                location.get("name") or LOCATION_TENANT_NAME,
                location.get("timezone") or DEFAULT_TIMEZONE,
            )
        logger.info(f"📍 Synced {len(locations)} location(s) for company {company_id}")

    async def _install_location(
        self, token_data: dict, location_id: str, company_id: Optional[str], user_type: str
    ) -> InstallResult:
        tenant = self.tenants.get_or_create_tenant(
            LOCATION_TENANT_NAME, "location", company_id or location_id
        )

        name, time_zone = LOCATION_TENANT_NAME, DEFAULT_TIMEZONE
        location_client = GHLClient(token_data["access_token"], transport=self.client.transport)
        try:
            location = await location_client.get_location(location_id)
            name = location.get("name") or name
            time_zone = location.get("timezone") or time_zone
        except (AppError, httpx.HTTPError) as e:
            logger.warning(f"⚠️ Could not fetch location details for {location_id}: {e}")

        LocationRepository.upsert_location(self.db, location_id, tenant.id, name, time_zone)
        store_tokens(
            self.db, tenant.id, location_id, token_data, user_type=user_type, company_id=company_id
        )
        logger.info(f"✅ Location installation complete for {location_id}")
        return InstallResult(
            redirect_url=f"/?{urlencode({'locationId': location_id})}",
            message="Installation complete! You can now manage calendars for this location.",
            location_id=location_id,
            company_id=company_id,
        )
