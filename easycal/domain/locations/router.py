"""Locations router - timezone and install detection"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from .service import LocationService

router = APIRouter(prefix="/api", tags=["Locations"])


def get_location_service(db: Session = Depends(get_db)) -> LocationService:
    """Dependency injection for LocationService"""
    return LocationService(db)


@router.get("/location-timezone")
async def location_timezone(
    locationId: Optional[str] = Query(None),
    service: LocationService = Depends(get_location_service),
):
    if not locationId:
        return JSONResponse(status_code=400, content={"error": "locationId parameter is required"})
    return {"timeZone": await service.get_timezone(locationId)}


@router.get("/detect-location")
async def detect_location(service: LocationService = Depends(get_location_service)):
    """Location (or agency) of the most relevant active install"""
    detected = service.detect_location()
    if detected is None:
        return JSONResponse(status_code=404, content={"error": "No valid tokens found"})
    return detected


@router.get("/locations")
async def list_locations(
    tenantId: Optional[str] = Query(None),
    service: LocationService = Depends(get_location_service),
):
    if not tenantId:
        return JSONResponse(status_code=400, content={"error": "tenantId parameter is required"})
    return {"locations": service.list_locations(tenantId)}
