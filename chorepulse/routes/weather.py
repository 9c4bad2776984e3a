"""
Current weather for the family hub.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from chorepulse.weather import Location, WeatherLookupError, current_weather, resolve_zip

router = APIRouter(tags=["weather"])


@router.get("/weather")
def weather(
    zip_code: Optional[str] = Query(default=None, alias="zip"),
    lat: Optional[float] = Query(default=None),
    lon: Optional[float] = Query(default=None),
):
    try:
        if lat is not None and lon is not None:
            location = Location(latitude=lat, longitude=lon, label="Your Location")
        elif zip_code:
            location = resolve_zip(zip_code)
        else:
            raise HTTPException(status_code=400, detail="ZIP code or lat/lon is required")
        return current_weather(location)
    except WeatherLookupError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
