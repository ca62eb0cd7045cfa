"""Calendars router - list, create, delete, batch update and CSV import"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import GHLAPIError
from ...kv import KVStore, get_kv
from .importer import CalendarImporter, parse_csv_text
from .service import CalendarService, NotAuthenticated, validate_update_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Calendars"])


def get_calendar_service(db: Session = Depends(get_db)) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db)


def get_calendar_importer(db: Session = Depends(get_db), kv: KVStore = Depends(get_kv)) -> CalendarImporter:
    return CalendarImporter(db, kv)


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


def not_authenticated_response(location_id: str) -> JSONResponse:
    return error_response(
        401,
        "Not authenticated",
        message="No access token found for this location. Please connect to EasyCal first.",
        locationId=location_id,
    )


def missing_location_response() -> JSONResponse:
    return error_response(400, "locationId parameter is required")


@router.get("/calendars")
async def list_calendars(
    locationId: Optional[str] = Query(None),
    service: CalendarService = Depends(get_calendar_service),
):
    """All calendars for the location, drafted ones included"""
    if not locationId:
        return missing_location_response()
    try:
        return await service.list_calendars(locationId)
    except NotAuthenticated:
        return not_authenticated_response(locationId)
    except GHLAPIError as e:
        return error_response(
            502, "Failed to fetch calendars from GHL API", status=e.status_code, details=e.details
        )


@router.post("/calendars", status_code=201)
async def create_calendar(
    locationId: Optional[str] = Query(None),
    body: Any = Body(None),
    service: CalendarService = Depends(get_calendar_service),
):
    if not locationId:
        return missing_location_response()
    calendar_data = body if isinstance(body, dict) else {}
    if not calendar_data.get("name") or not calendar_data.get("slug"):
        return error_response(400, "Calendar name and slug are required")
    try:
        return await service.create_calendar(locationId, calendar_data)
    except NotAuthenticated:
        return not_authenticated_response(locationId)
    except GHLAPIError as e:
        return error_response(502, "Failed to create calendar in GHL API", details=e.details)


@router.delete("/calendars")
async def delete_calendars(
    locationId: Optional[str] = Query(None),
    body: Any = Body(None),
    service: CalendarService = Depends(get_calendar_service),
):
    """Bulk delete; every id is confirmed gone before it counts as deleted"""
    if not locationId:
        return missing_location_response()

    calendar_ids = body.get("calendarIds") if isinstance(body, dict) else None
    if not isinstance(calendar_ids, list):
        return error_response(400, "calendarIds array is required")
    if not calendar_ids:
        return error_response(400, "No calendar IDs provided for deletion")

    valid_ids = [cid.strip() for cid in calendar_ids if isinstance(cid, str) and cid.strip()]
    if not valid_ids:
        return error_response(400, "All provided calendar IDs were invalid")
    if len(valid_ids) != len(calendar_ids):
        logger.warning(f"⚠️ Skipping {len(calendar_ids) - len(valid_ids)} invalid calendar ID(s)")

    try:
        return await service.delete_calendars(locationId, valid_ids)
    except NotAuthenticated:
        return not_authenticated_response(locationId)


@router.post("/batch-update-calendars")
async def batch_update_calendars(
    body: Any = Body(None),
    service: CalendarService = Depends(get_calendar_service),
):
    """Apply a date override, block a day, or clear overrides on many calendars"""
    body = body if isinstance(body, dict) else {}
    location_id = body.get("locationId")
    calendar_ids = body.get("calendarIds")
    update_data = body.get("updateData")

    if not location_id or not calendar_ids or not update_data:
        return error_response(400, "Missing required fields")
    if not isinstance(calendar_ids, list) or not isinstance(update_data, dict):
        return error_response(400, "calendarIds must be an array and updateData an object")

    problem = validate_update_data(update_data)
    if problem:
        return error_response(400, problem)

    try:
        return await service.batch_update(location_id, calendar_ids, update_data)
    except NotAuthenticated:
        return not_authenticated_response(location_id)


@router.get("/batch-update-calendars")
async def inspect_calendar(
    calendarId: Optional[str] = Query(None),
    locationId: Optional[str] = Query(None),
    service: CalendarService = Depends(get_calendar_service),
):
    """Raw calendar document and its field layout"""
    if not calendarId or not locationId:
        return error_response(400, "Missing calendarId or locationId")
    try:
        return await service.get_calendar_structure(locationId, calendarId)
    except NotAuthenticated:
        return error_response(401, "No authentication found")
    except GHLAPIError as e:
        return error_response(502, "Failed to fetch calendar", message=e.message, details=e.details)


async def run_import(
    location_id: str,
    rows: list[dict],
    dry_run: bool,
    service: CalendarService,
    importer: CalendarImporter,
):
    client = None
    if not dry_run:
        try:
            client = await service.client_for(location_id)
        except NotAuthenticated:
            return not_authenticated_response(location_id)
    return await importer.import_rows(location_id, rows, client=client, dry_run=dry_run)


@router.post("/import-calendars")
async def import_calendars(
    body: Any = Body(None),
    service: CalendarService = Depends(get_calendar_service),
    importer: CalendarImporter = Depends(get_calendar_importer),
):
    """Import parsed CSV rows"""
    body = body if isinstance(body, dict) else {}
    location_id = body.get("locationId")
    rows = body.get("csvRows")
    if not location_id or not isinstance(rows, list):
        return error_response(400, "Missing required fields: locationId, csvRows")

    rows = [row for row in rows if isinstance(row, dict)]
    return await run_import(location_id, rows, bool(body.get("dryRun")), service, importer)


@router.post("/import-calendars/csv")
async def import_calendars_csv(
    locationId: str = Form(...),
    file: UploadFile = File(...),
    dryRun: bool = Form(False),
    service: CalendarService = Depends(get_calendar_service),
    importer: CalendarImporter = Depends(get_calendar_importer),
):
    """Import an uploaded CSV file"""
    content = await file.read()
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        return error_response(400, "CSV file must be UTF-8 encoded")

    rows = parse_csv_text(text)
    if not rows:
        return error_response(400, "CSV file contains no rows")

    logger.info(f"📄 Parsed {len(rows)} row(s) from {file.filename}")
    return await run_import(locationId, rows, dryRun, service, importer)
