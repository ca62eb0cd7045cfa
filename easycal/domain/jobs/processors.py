"""Job processors - per-calendar create and delete against GHL"""

import logging
import time

import httpx

from ...errors import AppError, get_error_message
from ...rate_limiter import RateLimiter, ghl_limiter
from ...services.ghl_client import GHLClient
from ...shared.validators import slugify
from ..calendars.service import delete_calendar_verified
from .queue import JobResult, elapsed_ms

logger = logging.getLogger(__name__)


async def process_calendar_creation(
    data: dict, client: GHLClient, limiter: RateLimiter = ghl_limiter
) -> list[JobResult]:
    """Create each calendar in data["calendars"]; one failure does not stop the rest"""
    results = []
    location_id = data.get("locationId")

    for calendar in data.get("calendars") or []:
        started = time.monotonic()
        try:
            slug = calendar.get("slug") or slugify(calendar.get("name"))
            body = {**calendar, "slug": slug}
            if location_id:
                body["locationId"] = location_id
            response = await limiter.schedule(client.create_calendar, body)
            created = response.get("calendar") or response
            results.append(
                JobResult(
                    success=True,
                    data={"calendarId": created.get("id"), "name": calendar.get("name"), "slug": slug},
                    duration=elapsed_ms(started),
                )
            )
        except (AppError, httpx.HTTPError, ValueError) as e:
            results.append(
                JobResult(
                    success=False,
                    error=get_error_message(e) or "Failed to create calendar",
                    duration=elapsed_ms(started),
                )
            )
    return results


async def process_calendar_deletion(
    data: dict, client: GHLClient, limiter: RateLimiter = ghl_limiter
) -> list[JobResult]:
    results = []

    for calendar_id in data.get("calendarIds") or []:
        started = time.monotonic()
        try:
            error = await limiter.schedule(delete_calendar_verified, client, calendar_id)
        except (AppError, httpx.HTTPError, ValueError) as e:
            error = get_error_message(e) or "Failed to delete calendar"

        if error:
            results.append(JobResult(success=False, error=error, duration=elapsed_ms(started)))
        else:
            results.append(
                JobResult(success=True, data={"calendarId": calendar_id}, duration=elapsed_ms(started))
            )
    return results


PROCESSORS = {
    "create_calendars": process_calendar_creation,
    "delete_calendars": process_calendar_deletion,
}
