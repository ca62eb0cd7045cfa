"""Job domain schemas"""

from typing import Any, Optional

from pydantic import BaseModel


class JobCreate(BaseModel):
    type: str
    tenantId: str
    locationId: Optional[str] = None
    calendars: Optional[list[dict[str, Any]]] = None
    calendarIds: Optional[list[str]] = None


class JobCreated(BaseModel):
    jobId: str
    status: str
