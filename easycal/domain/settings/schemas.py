"""Settings domain schemas - brand config and calendar defaults documents"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_PRIMARY_COLOR = "#FFC300"
DEFAULT_BACKGROUND_COLOR = "#FFFFFF"
DEFAULT_BUTTON_TEXT = "Book Now"


class BrandConfig(BaseModel):
    """Per-location branding applied to imported calendars"""

    model_config = ConfigDict(extra="allow")

    locationId: str
    primaryColorHex: str = DEFAULT_PRIMARY_COLOR
    backgroundColorHex: str = DEFAULT_BACKGROUND_COLOR
    defaultButtonText: str = DEFAULT_BUTTON_TEXT
    timezone: Optional[str] = None
    defaultTimezone: Optional[str] = None
    coverImageUrl: Optional[str] = None
    updatedAt: Optional[str] = None


class CalendarDefaults(BaseModel):
    """Per-location defaults used when a CSV row leaves a field blank"""

    model_config = ConfigDict(extra="allow")

    locationId: str
    defaultSlotDurationMinutes: int = 30
    minSchedulingNoticeDays: int = 1
    bookingWindowDays: int = 30
    spotsPerBooking: int = 1
    defaultTimezone: Optional[str] = None
    updatedAt: Optional[str] = None
