"""Calendar service - GHL calendar proxying, bulk delete and availability batch updates"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DELETE_VERIFY_DELAY_SECONDS, GHL_CALENDAR_API_VERSION
from ...errors import AppError, GHLAPIError, get_error_message
from ...models import BatchUpdate
from ...rate_limiter import RateLimiter, ghl_limiter
from ...services.ghl_client import GHLClient
from ...services.token_service import get_location_access_token

logger = logging.getLogger(__name__)

DELETE_SUCCESS_STATUSES = (200, 202, 204, 404)
UPDATE_TYPES = ("remove", "override", "block")


class NotAuthenticated(Exception):
    """No usable GHL token for the location"""

    def __init__(self, location_id: str):
        super().__init__(location_id)
        self.location_id = location_id


async def delete_calendar_verified(client: GHLClient, calendar_id: str) -> Optional[str]:
    """
    Delete a calendar and confirm it is gone.

    GHL answers deletes inconsistently, so anything other than an explicit
    success is checked with a follow-up GET. Returns None on success, else
    the failure reason.
    """
    response = await client.delete_calendar(calendar_id)
    status = response.status_code
    logger.info(f"🗑️ Delete calendar {calendar_id} -> {status}")

    if status in DELETE_SUCCESS_STATUSES:
        return None

    if status == 422:
        try:
            check = await client.request("GET", f"/calendars/{calendar_id}")
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Could not verify 422 delete of {calendar_id}: {e}")
            return None
        return None if check.status_code == 404 else "Unprocessable entity error"

    await asyncio.sleep(DELETE_VERIFY_DELAY_SECONDS)
    try:
        check = await client.request("GET", f"/calendars/{calendar_id}")
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ Could not verify delete of {calendar_id}: {e}")
        return None

    if check.status_code == 404 or not check.is_success:
        return None

    try:
        data = check.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        found = data.get("id") or (data.get("calendar") or {}).get("id")
        if found == calendar_id:
            return "Calendar still exists after deletion attempt"
    return None


def _date_key(value) -> Optional[str]:
    """YYYY-MM-DD (UTC) of a GHL availability date"""
    if not value:
        return None
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text[:10]
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def _hour_minute(value: str) -> tuple[int, int]:
    hour, minute = value.split(":")[:2]
    return int(hour), int(minute)


def build_availability_update(calendar: dict, update_data: dict) -> dict:
    """PUT body for a date override, a blocked day, or clearing all overrides"""
    open_hours = calendar.get("openHours") or []
    availability_type = calendar.get("availabilityType") or 0
    update_type = update_data.get("type")

    if update_type == "remove":
        return {"openHours": open_hours, "availabilityType": availability_type, "availabilities": []}

    target_date = update_data.get("date")
    existing = [
        {"date": a.get("date"), "hours": a.get("hours") or [], "deleted": a.get("deleted") is True}
        for a in calendar.get("availabilities") or []
        if _date_key(a.get("date")) != target_date
    ]
    formatted_date = f"{target_date}T00:00:00.000Z"

    if update_type == "override":
        open_hour, open_minute = _hour_minute(update_data["startTime"])
        close_hour, close_minute = _hour_minute(update_data["endTime"])
        entry = {
            "date": formatted_date,
            "hours": [
                {
                    "openHour": open_hour,
                    "openMinute": open_minute,
                    "closeHour": close_hour,
                    "closeMinute": close_minute,
                }
            ],
            "deleted": False,
        }
    elif update_type == "block":
        # GHL closes a day via an empty openHours list on the date entry
        entry = {"openHours": [], "date": formatted_date}
    else:
        raise ValueError(f"Unknown update type: {update_type}")

    return {
        "openHours": open_hours,
        "availabilityType": availability_type,
        "availabilities": existing + [entry],
    }


def validate_update_data(update_data: dict) -> Optional[str]:
    update_type = update_data.get("type")
    if update_type not in UPDATE_TYPES:
        return f"updateData.type must be one of: {', '.join(UPDATE_TYPES)}"
    if update_type in ("override", "block") and not update_data.get("date"):
        return f"updateData.date is required for {update_type}"
    if update_type == "override":
        for field in ("startTime", "endTime"):
            value = str(update_data.get(field) or "")
            parts = value.split(":")
            if len(parts) < 2 or not all(part.strip().isdigit() for part in parts[:2]):
                return f"updateData.{field} must be HH:MM"
    return None


class CalendarService:
    def __init__(self, db: Session, limiter: RateLimiter = ghl_limiter):
        self.db = db
        self.limiter = limiter

    async def client_for(self, location_id: str) -> GHLClient:
        access_token = await get_location_access_token(self.db, location_id)
        if not access_token:
            raise NotAuthenticated(location_id)
        return GHLClient(access_token)

    async def list_calendars(self, location_id: str) -> dict:
        client = await self.client_for(location_id)
        data = await client.list_calendars(location_id)
        logger.info(f"📅 Found {len(data.get('calendars', []))} calendar(s) for location {location_id}")
        return data

    async def create_calendar(self, location_id: str, calendar_data: dict) -> dict:
        client = await self.client_for(location_id)
        body = {**calendar_data, "locationId": location_id}
        data = await self.limiter.schedule(client.create_calendar, body)
        logger.info(f"✅ Created calendar '{calendar_data.get('name')}' for location {location_id}")
        return data

    async def delete_calendars(self, location_id: str, calendar_ids: list[str]) -> dict:
        client = await self.client_for(location_id)
        results = {"success": [], "failed": []}

        for calendar_id in calendar_ids:
            try:
                error = await self.limiter.schedule(delete_calendar_verified, client, calendar_id)
            except (AppError, httpx.HTTPError) as e:
                error = get_error_message(e)
            if error:
                results["failed"].append({"id": calendar_id, "error": error})
            else:
                results["success"].append(calendar_id)

        logger.info(
            f"🗑️ Deleted {len(results['success'])} calendar(s), "
            f"{len(results['failed'])} failed for location {location_id}"
        )
        return results

    async def batch_update(self, location_id: str, calendar_ids: list[str], update_data: dict) -> dict:
        client = await self.client_for(location_id)
        results = {"successful": [], "failed": []}
        update_type = update_data.get("type")

        for calendar_id in calendar_ids:
            try:
                calendar = await self._fetch_for_update(client, calendar_id)
                payload = build_availability_update(calendar, update_data)
                try:
                    await client.update_calendar(calendar_id, payload)
                except GHLAPIError as e:
                    raise AppError(f"Update failed: {e.details}", status_code=e.status_code) from e

                entry = {
                    "calendarId": calendar_id,
                    "name": calendar.get("name") or calendar.get("title") or "Unknown",
                }
                if update_type == "block":
                    entry["debug_payload"] = {
                        "openHours_count": len(payload["openHours"]),
                        "availabilityType": payload["availabilityType"],
                        "availabilities": payload["availabilities"],
                    }
                results["successful"].append(entry)
            except (AppError, httpx.HTTPError) as e:
                logger.error(f"❌ Failed to update calendar {calendar_id}: {get_error_message(e)}")
                results["failed"].append({"calendarId": calendar_id, "error": get_error_message(e)})

        self._record_batch_update(location_id, update_data, calendar_ids, results)
        return {
            "success": True,
            "message": f"Updated {len(results['successful'])} calendar(s)",
            "results": results,
        }

    async def _fetch_for_update(self, client: GHLClient, calendar_id: str) -> dict:
        try:
            return await client.get_calendar(calendar_id)
        except GHLAPIError as e:
            raise AppError(f"Failed to fetch calendar: {e.status_code}", status_code=e.status_code) from e

    def _record_batch_update(
        self, location_id: str, update_data: dict, calendar_ids: list[str], results: dict
    ) -> None:
        """Audit row; the update itself already happened so failures are only logged"""
        try:
            self.db.add(
                BatchUpdate(
                    location_id=location_id,
                    update_type=update_data.get("type"),
                    update_data=update_data,
                    calendars_updated=calendar_ids,
                    successful_count=len(results["successful"]),
                    failed_count=len(results["failed"]),
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Could not record batch update for {location_id}: {e}")

    async def get_calendar_structure(self, location_id: str, calendar_id: str) -> dict:
        client = await self.client_for(location_id)
        data = await client.request_json(
            "GET", f"/calendars/{calendar_id}", "Get calendar", version=GHL_CALENDAR_API_VERSION
        )
        data = data if isinstance(data, dict) else {}
        return {
            "success": True,
            "calendar": data,
            "structure": {
                "topLevelFields": list(data.keys()),
                "scheduleFields": list((data.get("schedule") or {}).keys()),
                "availabilityFields": list((data.get("availability") or {}).keys()),
                "note": "Use this structure to understand how GHL stores calendar data",
            },
        }
