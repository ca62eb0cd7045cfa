"""Settings router - brand config and calendar defaults endpoints"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from ...kv import KVStore, get_kv
from .service import SettingsService, SettingsValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Settings"])


def get_settings_service(kv: KVStore = Depends(get_kv)) -> SettingsService:
    """Dependency injection for SettingsService"""
    return SettingsService(kv)


def missing_location_response() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "locationId parameter is required"})


def validation_failed_response(exc: SettingsValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Validation failed", "errors": exc.errors})


def body_as_dict(body: Any) -> Optional[dict]:
    return body if isinstance(body, dict) else None


@router.get("/brand-config")
async def get_brand_config(
    locationId: Optional[str] = Query(None),
    service: SettingsService = Depends(get_settings_service),
):
    """Stored brand config, or the built-in defaults"""
    if not locationId:
        return missing_location_response()
    return service.get_brand_config(locationId)


@router.post("/brand-config")
async def save_brand_config(
    body: Any = Body(...),
    service: SettingsService = Depends(get_settings_service),
):
    config = body_as_dict(body)
    if config is None:
        return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object"})
    try:
        return service.save_brand_config(config)
    except SettingsValidationError as e:
        return validation_failed_response(e)


@router.get("/settings/defaults")
async def get_calendar_defaults(
    locationId: Optional[str] = Query(None),
    service: SettingsService = Depends(get_settings_service),
):
    """Stored calendar defaults, or the built-in defaults"""
    if not locationId:
        return missing_location_response()
    return service.get_calendar_defaults(locationId)


@router.post("/settings/defaults")
async def save_calendar_defaults(
    body: Any = Body(...),
    service: SettingsService = Depends(get_settings_service),
):
    defaults = body_as_dict(body)
    if defaults is None:
        return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object"})
    try:
        return service.save_calendar_defaults(defaults)
    except SettingsValidationError as e:
        return validation_failed_response(e)
