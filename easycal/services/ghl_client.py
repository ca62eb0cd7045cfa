"""
GHL (LeadConnector) REST API client
Covers OAuth token endpoints, calendars, calendar groups and locations
"""

import logging
from typing import Any, Optional

import httpx

from ..config import (
    GHL_API_BASE_URL,
    GHL_API_VERSION,
    GHL_CALENDAR_API_VERSION,
    HL_CLIENT_ID,
    HL_CLIENT_SECRET,
    OAUTH_REDIRECT_URL,
)
from ..errors import GHLAPIError
from ..shared.validators import slugify

logger = logging.getLogger(__name__)

# Process-wide transport override (tests install an httpx.MockTransport here)
http_transport: Optional[httpx.AsyncBaseTransport] = None


class GHLClient:
    """Thin async wrapper over the GHL API"""

    TOKEN_PATH = "/oauth/token"  # noqa: S105 - OAuth endpoint path
    LOCATION_TOKEN_PATH = "/oauth/locationToken"  # noqa: S105 - OAuth endpoint path

    def __init__(
        self,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.access_token = access_token
        self.transport = transport
        self.timeout = timeout
        self.client_id = HL_CLIENT_ID
        self.client_secret = HL_CLIENT_SECRET

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GHL_API_BASE_URL,
            transport=self.transport or http_transport,
            timeout=self.timeout,
        )

    def _headers(self, version: str = GHL_API_VERSION, json_body: bool = True) -> dict:
        headers = {"Version": version, "Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self, method: str, path: str, version: str = GHL_API_VERSION, **kwargs
    ) -> httpx.Response:
        """Raw request; callers inspect the status themselves"""
        headers = self._headers(version, json_body="json" in kwargs)
        headers.update(kwargs.pop("headers", {}))
        async with self._http() as client:
            response = await client.request(method, path, headers=headers, **kwargs)
        logger.debug(f"GHL {method} {path} -> {response.status_code}")
        return response

    async def request_json(
        self, method: str, path: str, context: str, version: str = GHL_API_VERSION, **kwargs
    ) -> Any:
        response = await self.request(method, path, version=version, **kwargs)
        if not response.is_success:
            logger.error(f"❌ GHL API error in {context}: {response.status_code} {response.text[:500]}")
            raise GHLAPIError(response, context)
        if not response.content:
            return {}
        return response.json()

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> dict:
        """Exchange an authorization code for tokens"""
        logger.info("🔄 Exchanging OAuth code for GHL tokens")
        return await self.request_json(
            "POST",
            self.TOKEN_PATH,
            "OAuth code exchange",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or OAUTH_REDIRECT_URL,
                "user_type": "Location",
            },
        )

    async def refresh_access_token(self, refresh_token: str) -> dict:
        logger.info("🔄 Refreshing GHL access token")
        return await self.request_json(
            "POST",
            self.TOKEN_PATH,
            "OAuth token refresh",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "user_type": "Location",
            },
        )

    async def get_location_token(self, company_id: str, location_id: str) -> dict:
        """Trade this client's agency token for a location token"""
        return await self.request_json(
            "POST",
            self.LOCATION_TOKEN_PATH,
            "Agency location token",
            data={"companyId": company_id, "locationId": location_id},
        )

    # ------------------------------------------------------------------
    # Calendars
    # ------------------------------------------------------------------

    async def list_calendars(self, location_id: str, show_drafted: bool = True) -> dict:
        params = {"locationId": location_id}
        if show_drafted:
            params["showDrafted"] = "true"
        return await self.request_json("GET", "/calendars/", "List calendars", params=params)

    async def get_calendar(self, calendar_id: str) -> dict:
        """Calendar detail, unwrapped from the {"calendar": ...} envelope"""
        data = await self.request_json(
            "GET", f"/calendars/{calendar_id}", "Get calendar", version=GHL_CALENDAR_API_VERSION
        )
        return data.get("calendar", data) if isinstance(data, dict) else data

    async def create_calendar(self, body: dict) -> dict:
        return await self.request_json("POST", "/calendars", "Create calendar", json=body)

    async def update_calendar(
        self, calendar_id: str, body: dict, version: str = GHL_CALENDAR_API_VERSION
    ) -> dict:
        return await self.request_json(
            "PUT", f"/calendars/{calendar_id}", "Update calendar", version=version, json=body
        )

    async def delete_calendar(self, calendar_id: str) -> httpx.Response:
        return await self.request("DELETE", f"/calendars/{calendar_id}")

    async def find_calendar_by_slug(self, location_id: str, slug: str) -> Optional[dict]:
        data = await self.list_calendars(location_id)
        for calendar in data.get("calendars", []):
            if calendar.get("slug") == slug:
                return calendar
        return None

    async def create_or_update_calendar(self, body: dict) -> tuple[str, bool]:
        """Update the calendar with the same slug if one exists, else create it"""
        existing = await self.find_calendar_by_slug(body["locationId"], body["slug"])
        if existing:
            logger.info(f"♻️ Updating existing calendar {existing['id']} (slug: {body['slug']})")
            data = await self.update_calendar(existing["id"], body, version=GHL_API_VERSION)
            calendar = data.get("calendar") or {}
            return calendar.get("id", existing["id"]), True

        data = await self.create_calendar(body)
        calendar = data.get("calendar") or data
        return calendar.get("id"), False

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def list_groups(self, location_id: str) -> list[dict]:
        data = await self.request_json(
            "GET", "/calendars/groups", "List groups", params={"locationId": location_id}
        )
        return data.get("groups", [])

    async def create_group(self, location_id: str, name: str) -> str:
        data = await self.request_json(
            "POST",
            "/calendars/groups",
            "Create group",
            json={"locationId": location_id, "name": name, "slug": slugify(name), "isActive": True},
        )
        return data["group"]["id"]

    async def ensure_group(self, location_id: str, name: str) -> str:
        """Id of the group named name (case-insensitive), creating it if missing"""
        for group in await self.list_groups(location_id):
            if (group.get("name") or "").lower() == name.lower():
                return group["id"]
        logger.info(f"➕ Creating calendar group '{name}' for location {location_id}")
        return await self.create_group(location_id, name)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    async def get_location(self, location_id: str) -> dict:
        data = await self.request_json("GET", f"/locations/{location_id}", "Get location")
        return data.get("location", data)

    async def list_locations(self, company_id: str) -> list[dict]:
        data = await self.request_json(
            "GET", "/locations/search", "List locations", params={"companyId": company_id}
        )
        return data.get("locations", [])
