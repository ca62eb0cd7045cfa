"""Location service - timezone lookup and current-install detection"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ...config import DEFAULT_TIMEZONE
from ...errors import AppError
from ...models import Token, utc_now
from ...services.ghl_client import GHLClient
from ...services.token_service import find_location_token, get_location_access_token
from ..tenants.repository import LocationRepository, TokenRepository, is_placeholder_location

logger = logging.getLogger(__name__)

AGENCY_LOCATION_NAME = "Agency Installation"
LOCATION_INSTALL_NAME = "Location Installation"


def _detect_rank(token: Token) -> tuple:
    """Location tokens first, then real location ids, then newest expiry"""
    return (
        0 if token.user_type == "Location" else 1,
        1 if is_placeholder_location(token.location_id) else 0,
        -token.expires_at.timestamp(),
    )


class LocationService:
    def __init__(self, db: Session):
        self.db = db

    async def get_timezone(self, location_id: str) -> str:
        """Stored timezone, else the one GHL reports; falls back to the default"""
        location = LocationRepository.get_location(self.db, location_id)
        if location:
            return location.time_zone

        access_token = await get_location_access_token(self.db, location_id)
        if not access_token:
            return DEFAULT_TIMEZONE

        try:
            data = await GHLClient(access_token).get_location(location_id)
        except (AppError, httpx.HTTPError) as e:
            logger.warning(f"⚠️ Could not fetch timezone for {location_id}: {e}")
            return DEFAULT_TIMEZONE

        time_zone = data.get("timezone") or DEFAULT_TIMEZONE
        self._remember_location(location_id, data.get("name"), time_zone)
        return time_zone

    def _remember_location(self, location_id: str, name: Optional[str], time_zone: str) -> None:
        token = find_location_token(self.db, location_id)
        if not token or is_placeholder_location(location_id):
            return
        LocationRepository.upsert_location(
            self.db, location_id, token.tenant_id, name or LOCATION_INSTALL_NAME, time_zone
        )
        logger.info(f"🕐 Stored timezone {time_zone} for location {location_id}")

    def detect_location(self) -> Optional[dict]:
        """Describe the most relevant active installation"""
        tokens = TokenRepository.get_valid_tokens(self.db, utc_now())
        if not tokens:
            return None
        token = min(tokens, key=_detect_rank)

        if token.user_type == "Company":
            return {
                "locationId": token.location_id,
                "companyId": token.company_id,
                "userType": "Company",
                "isAgencyInstall": True,
                "locationName": AGENCY_LOCATION_NAME,
                "timeZone": DEFAULT_TIMEZONE,
            }

        location = token.location
        return {
            "locationId": token.location_id,
            "companyId": token.company_id,
            "userType": "Location",
            "isAgencyInstall": False,
            "locationName": location.name if location else LOCATION_INSTALL_NAME,
            "timeZone": location.time_zone if location else DEFAULT_TIMEZONE,
        }

    def list_locations(self, tenant_id: str) -> list[dict]:
        return [
            {
                "id": location.id,
                "tenantId": location.tenant_id,
                "name": location.name,
                "timeZone": location.time_zone,
                "isEnabled": location.is_enabled,
            }
            for location in LocationRepository.get_locations(self.db, tenant_id)
        ]
