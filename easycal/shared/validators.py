"""Shared validation utilities"""

import re
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
TIME_24H_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
TIME_12H_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(AM|PM)$", re.IGNORECASE)

DAY_MAP = {
    "mon": "Mon",
    "monday": "Mon",
    "tue": "Tue",
    "tues": "Tue",
    "tuesday": "Tue",
    "wed": "Wed",
    "wednesday": "Wed",
    "thu": "Thu",
    "thur": "Thu",
    "thurs": "Thu",
    "thursday": "Thu",
    "fri": "Fri",
    "friday": "Fri",
    "sat": "Sat",
    "saturday": "Sat",
    "sun": "Sun",
    "sunday": "Sun",
}

MAX_SLUG_LENGTH = 50

SCHEDULE_BLOCKS_FORMAT_ERROR = (
    'Invalid schedule blocks format. Use "Mon 09:00-10:00; Wed 14:30-15:30"'
)


@dataclass
class ScheduleBlock:
    day: str  # Mon..Sun
    start: str  # HH:MM
    end: str  # HH:MM


@dataclass
class ValidationIssue:
    row: int
    field: str
    message: str
    severity: str = "error"  # error, warning


def validate_color(color: Optional[str]) -> bool:
    return bool(color) and HEX_COLOR_RE.match(color) is not None


def validate_button_text(text: Optional[str]) -> bool:
    return text is not None and 3 <= len(text) <= 30


def validate_timezone(timezone: Optional[str]) -> bool:
    """Check an IANA timezone name"""
    if not timezone or not isinstance(timezone, str):
        return False
    try:
        ZoneInfo(timezone)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def to_24h(value: str) -> Optional[str]:
    """
    Convert a time string to HH:MM.

    Accepts 24 hour ("9:00", "15:00") and 12 hour ("3:00 PM", "3PM") forms.
    Returns None when the value is not a time.
    """
    trimmed = value.strip()

    match = TIME_24H_RE.match(trimmed)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if 0 <= hours <= 23 and 0 <= minutes <= 59:
            return f"{hours:02d}:{minutes:02d}"

    match = TIME_12H_RE.match(trimmed)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        meridiem = match.group(3).upper()
        if hours < 1 or hours > 12 or minutes > 59:
            return None
        if meridiem == "AM" and hours == 12:
            hours = 0
        elif meridiem == "PM" and hours != 12:
            hours += 12
        return f"{hours:02d}:{minutes:02d}"

    return None


def normalize_day(token: str) -> Optional[str]:
    return DAY_MAP.get(token.strip().lower())


def parse_schedule_blocks(value: Optional[str]) -> list[ScheduleBlock]:
    """
    Parse "Mon 09:00-10:00; Wed 2:30 PM-3:30 PM" into blocks.

    Segments with an unknown day or unparseable times are skipped.
    """
    if not value or not value.strip():
        return []

    blocks = []
    for segment in (s.strip() for s in value.split(";")):
        if not segment:
            continue
        match = re.match(r"^(\w+)\s+(.+?)\s*-\s*(.+)$", segment)
        if not match:
            continue
        day = normalize_day(match.group(1))
        start = to_24h(match.group(2))
        end = to_24h(match.group(3))
        if day and start and end:
            blocks.append(ScheduleBlock(day=day, start=start, end=end))
    return blocks


def slugify(name: Optional[str]) -> str:
    slug = (name or "").lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def uniquify_slug(base_slug: str, existing_slugs) -> str:
    existing = set(existing_slugs)
    slug = base_slug
    counter = 2
    while slug in existing:
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def parse_positive_int(value) -> Optional[int]:
    """Leading-integer parse; None unless the result is > 0"""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    match = re.match(r"^\s*(-?\d+)", str(value))
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None


def validate_brand_config(config: dict) -> list[str]:
    errors = []

    if not config.get("locationId"):
        errors.append("Location ID is required")

    if not validate_color(config.get("primaryColorHex")):
        errors.append("Primary color must be a valid hex color (#RRGGBB)")

    if not validate_color(config.get("backgroundColorHex")):
        errors.append("Background color must be a valid hex color (#RRGGBB)")

    if not validate_button_text(config.get("defaultButtonText")):
        errors.append("Default button text must be 3-30 characters")

    for field in ("timezone", "defaultTimezone"):
        if config.get(field) and not validate_timezone(config[field]):
            errors.append("Invalid timezone format")
            break

    return errors


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_calendar_defaults(defaults: dict) -> list[str]:
    errors = []

    if not defaults.get("locationId"):
        errors.append("Location ID is required")

    slot = defaults.get("defaultSlotDurationMinutes")
    if not _is_number(slot) or slot < 1:
        errors.append("Default slot duration must be a positive number")

    notice = defaults.get("minSchedulingNoticeDays")
    if not _is_number(notice) or notice < 0:
        errors.append("Minimum scheduling notice must be 0 or greater")

    window = defaults.get("bookingWindowDays")
    if not _is_number(window) or window < 1:
        errors.append("Booking window must be at least 1 day")

    spots = defaults.get("spotsPerBooking")
    if not _is_number(spots) or spots < 1:
        errors.append("Spots per booking must be at least 1")

    if defaults.get("defaultTimezone") and not validate_timezone(defaults["defaultTimezone"]):
        errors.append("Invalid timezone format")

    return errors


def row_value(row: dict, *names: str) -> str:
    """First non-empty column among names, stripped"""
    for name in names:
        value = row.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def validate_csv_row(row: dict, row_index: int) -> list[ValidationIssue]:
    issues = []

    def error(field, message):
        issues.append(ValidationIssue(row_index, field, message, "error"))

    if row_value(row, "calendar_type").lower() != "event":
        error("calendar_type", 'Calendar type must be "event"')

    if not row_value(row, "calendar_name"):
        error("calendar_name", "Calendar name is required")

    schedule_blocks = row_value(row, "schedule_blocks")
    if schedule_blocks:
        if not parse_schedule_blocks(schedule_blocks):
            error("schedule_blocks", SCHEDULE_BLOCKS_FORMAT_ERROR)
    else:
        if not row_value(row, "day_of_week"):
            error("day_of_week", "Day of week is required when schedule_blocks not provided")
        elif not normalize_day(row_value(row, "day_of_week")):
            error("day_of_week", "Day of week must be a valid day name (e.g. Mon, Tuesday)")

        start = row_value(row, "time_of_week").split("-")[0].strip()
        if not start or not to_24h(start):
            error("time_of_week", "Valid time of week is required (HH:MM format)")

    slot_interval = parse_positive_int(row_value(row, "slot_interval", "slot_interval_minutes"))
    class_duration = parse_positive_int(row_value(row, "class_duration", "class_duration_minutes"))

    if slot_interval is None:
        error("slot_interval", "Slot interval must be a positive number")

    if class_duration is None:
        error("class_duration", "Class duration must be a positive number")

    if slot_interval and class_duration and class_duration % slot_interval != 0:
        issues.append(
            ValidationIssue(
                row_index,
                "class_duration",
                f"Class duration ({class_duration}) should be divisible by slot interval ({slot_interval})",
                "warning",
            )
        )

    primary = row_value(row, "primary_color_hex")
    if primary and not validate_color(primary):
        error("primary_color_hex", "Primary color must be a valid hex color (#RRGGBB)")

    background = row_value(row, "background_color_hex")
    if background and not validate_color(background):
        error("background_color_hex", "Background color must be a valid hex color (#RRGGBB)")

    timezone = row_value(row, "timezone")
    if timezone and not validate_timezone(timezone):
        error("timezone", "Invalid timezone format")

    button_text = row_value(row, "button_text")
    if button_text and not validate_button_text(button_text):
        error("button_text", "Button text must be 3-30 characters")

    return issues
