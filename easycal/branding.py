"""
Calendar branding and payload construction for CSV imports

Branding precedence: CSV row override > brand config > calendar defaults
> location timezone > built-in defaults.
"""

import hashlib
import logging
from typing import Optional

from pydantic import BaseModel

from .config import DEFAULT_TIMEZONE
from .shared.validators import (
    normalize_day,
    parse_positive_int,
    parse_schedule_blocks,
    row_value,
    slugify,
    to_24h,
)

logger = logging.getLogger(__name__)

MAKEUP_BUTTON_TEXT = "Schedule Make-Up"
EVENT_TYPE = "RoundRobin_OptimizeForAvailability"
EVENT_CALENDAR_TYPE = 1
MAX_SCHEDULING_NOTICE_DAYS = 365
MINUTES_PER_DAY = 24 * 60

DAY_NUMBERS = {"Sun": 0, "Mon": 1, "Tue": 2, "Wed": 3, "Thu": 4, "Fri": 5, "Sat": 6}


class Customizations(BaseModel):
    primaryColor: str
    backgroundColor: str
    buttonText: str


class WeeklyBlock(BaseModel):
    day: str
    start: str
    end: str


class Availability(BaseModel):
    weekly: list[WeeklyBlock]
    slotInterval: int


class CalendarPayload(BaseModel):
    """Calendar as built from a CSV row, before conversion to the GHL body"""

    locationId: str
    name: str
    description: Optional[str] = None
    widgetType: str = "default"
    customizations: Customizations
    duration: int
    timeZone: str
    availability: Availability
    minSchedulingNotice: int = 0
    maxBookingsPerDay: Optional[int] = None
    groupId: Optional[str] = None
    slug: str


class Branding(BaseModel):
    primary: str
    background: str
    button: str
    timezone: str


def apply_branding(
    row: dict,
    brand: dict,
    defaults: Optional[dict] = None,
    location_tz: Optional[str] = None,
) -> Branding:
    primary = row_value(row, "primary_color_hex") or brand.get("primaryColorHex")
    background = row_value(row, "background_color_hex") or brand.get("backgroundColorHex")

    button = row_value(row, "button_text")
    if not button:
        if row_value(row, "calendar_purpose").lower() == "makeup":
            button = MAKEUP_BUTTON_TEXT
        else:
            button = brand.get("defaultButtonText")

    timezone = (
        row_value(row, "timezone")
        or brand.get("defaultTimezone")
        or brand.get("timezone")
        or (defaults or {}).get("defaultTimezone")
        or location_tz
        or DEFAULT_TIMEZONE
    )

    return Branding(primary=primary, background=background, button=button, timezone=timezone)


def add_minutes_to_time(time_str: str, minutes: int) -> str:
    hours, mins = (int(part) for part in time_str.split(":"))
    total = hours * 60 + mins + minutes
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def _weekly_availability(row: dict, duration: int) -> list[WeeklyBlock]:
    blocks = parse_schedule_blocks(row_value(row, "schedule_blocks"))
    if blocks:
        return [WeeklyBlock(day=b.day, start=b.start, end=b.end) for b in blocks]

    # Single day/time; time_of_week may be "HH:MM" or "HH:MM-HH:MM"
    time_range = row_value(row, "time_of_week").split("-")
    start = to_24h(time_range[0]) or time_range[0].strip()
    end = to_24h(time_range[1]) if len(time_range) > 1 else None
    if not end:
        end = add_minutes_to_time(start, duration)
    day = normalize_day(row_value(row, "day_of_week")) or "Mon"
    return [WeeklyBlock(day=day, start=start, end=end)]


def build_calendar_payload(
    row: dict,
    brand: dict,
    group_id: Optional[str] = None,
    defaults: Optional[dict] = None,
    location_tz: Optional[str] = None,
) -> CalendarPayload:
    branding = apply_branding(row, brand, defaults, location_tz)
    defaults = defaults or {}

    name = row_value(row, "calendar_name")
    slug = row_value(row, "custom_url") or slugify(name)

    slot_interval = parse_positive_int(
        row_value(row, "slot_interval", "slot_interval_minutes")
    ) or defaults.get("defaultSlotDurationMinutes", 30)
    duration = parse_positive_int(
        row_value(row, "class_duration", "class_duration_minutes")
    ) or slot_interval

    notice_value = row_value(row, "min_scheduling_notice", "min_scheduling_notice_days")
    if notice_value.isdigit():
        min_notice = int(notice_value)
    else:
        min_notice = int(defaults.get("minSchedulingNoticeDays", 0) or 0)

    max_per_day = parse_positive_int(row_value(row, "max_bookings_per_day"))
    if max_per_day is None and defaults.get("spotsPerBooking"):
        max_per_day = int(defaults["spotsPerBooking"])

    return CalendarPayload(
        locationId=brand.get("locationId", ""),
        name=name,
        description=row_value(row, "class_description") or None,
        customizations=Customizations(
            primaryColor=branding.primary,
            backgroundColor=branding.background,
            buttonText=branding.button,
        ),
        duration=duration,
        timeZone=branding.timezone,
        availability=Availability(
            weekly=_weekly_availability(row, duration), slotInterval=slot_interval
        ),
        minSchedulingNotice=min_notice,
        maxBookingsPerDay=max_per_day,
        groupId=group_id,
        slug=slug,
    )


def generate_idempotency_key(location_id: str, calendar_name: str, custom_url: Optional[str] = None) -> str:
    digest = hashlib.sha256(f"{location_id}:{calendar_name}:{custom_url or ''}".encode())
    return digest.hexdigest()[:16]


def day_number(day: str) -> int:
    """0 = Sunday; unknown days fall back to Monday"""
    return DAY_NUMBERS.get(normalize_day(day) or day, 1)


def to_ghl_calendar_body(payload: CalendarPayload, location_id: Optional[str] = None) -> dict:
    """GHL create/update body for an event calendar"""
    body = {
        "locationId": location_id or payload.locationId,
        "name": payload.name,
        "description": payload.description,
        "slug": payload.slug,
        "widgetType": payload.widgetType,
        "calendarType": EVENT_CALENDAR_TYPE,
        "eventType": EVENT_TYPE,
        "groupId": payload.groupId,
        "isActive": True,
        "customizations": payload.customizations.model_dump(),
        "availabilityTimezone": payload.timeZone,
        "slotDurationMinutes": payload.availability.slotInterval,
        "slotBufferMinutes": 0,
        "minSchedulingNoticeMinutes": payload.minSchedulingNotice * MINUTES_PER_DAY,
        "maxSchedulingNoticeDays": MAX_SCHEDULING_NOTICE_DAYS,
        "maxBookingsPerSlot": 1,
        "maxBookingsPerDay": payload.maxBookingsPerDay,
        "openHours": [open_hours_entry(block) for block in payload.availability.weekly],
    }
    return {key: value for key, value in body.items() if value is not None}


def open_hours_entry(block: WeeklyBlock) -> dict:
    open_hour, open_minute = (int(part) for part in block.start.split(":"))
    close_hour, close_minute = (int(part) for part in block.end.split(":"))
    return {
        "daysOfTheWeek": [day_number(block.day)],
        "hours": [
            {
                "openHour": open_hour,
                "openMinute": open_minute,
                "closeHour": close_hour,
                "closeMinute": close_minute,
            }
        ],
    }
