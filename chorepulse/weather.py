"""
Current conditions from Open-Meteo, with ZIP codes resolved through zippopotam.us.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from chorepulse.timefmt import round_half_up

logger = logging.getLogger(__name__)

ZIP_LOOKUP_URL = "https://api.zippopotam.us/us/{zip}"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
REQUEST_TIMEOUT = 15

# (first code, last code, condition, icon) for WMO weather interpretation codes
WMO_CONDITIONS = (
    (0, 0, "Clear", "☀️"),
    (1, 2, "Partly Cloudy", "⛅"),
    (3, 3, "Cloudy", "☁️"),
    (45, 48, "Foggy", "🌫️"),
    (51, 57, "Drizzle", "🌦️"),
    (61, 67, "Rain", "🌧️"),
    (71, 77, "Snow", "🌨️"),
    (80, 82, "Rain Showers", "🌧️"),
    (85, 86, "Snow Showers", "🌨️"),
    (95, 99, "Thunderstorm", "⛈️"),
)


class WeatherLookupError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Location:
    latitude: float
    longitude: float
    label: str


def describe_weather_code(code: Optional[int]) -> tuple[str, str]:
    if code is not None:
        for first, last, condition, icon in WMO_CONDITIONS:
            if first <= code <= last:
                return condition, icon
    return "Unknown", "🌡️"


def resolve_zip(zip_code: str, session: Optional[requests.Session] = None) -> Location:
    http = session or requests
    try:
        response = http.get(ZIP_LOOKUP_URL.format(zip=zip_code), timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.warning("ZIP lookup failed for %s: %s", zip_code, e)
        raise WeatherLookupError("Invalid ZIP code", status_code=400) from e
    if not response.ok:
        raise WeatherLookupError("Invalid ZIP code", status_code=400)
    places = response.json().get("places") or []
    if not places:
        raise WeatherLookupError("Invalid ZIP code", status_code=400)
    place = places[0]
    return Location(
        latitude=float(place["latitude"]),
        longitude=float(place["longitude"]),
        label=f"{place.get('place name', '')}, {place.get('state abbreviation', '')}",
    )


def current_weather(location: Location, session: Optional[requests.Session] = None) -> dict:
    http = session or requests
    params = {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "current": "temperature_2m,weather_code,wind_speed_10m",
        "temperature_unit": "fahrenheit",
        "wind_speed_unit": "mph",
        "timezone": "auto",
    }
    try:
        response = http.get(FORECAST_URL, params=params, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.exception("Open-Meteo request failed")
        raise WeatherLookupError("Failed to fetch weather data") from e
    if not response.ok:
        raise WeatherLookupError("Failed to fetch weather data")

    current = response.json().get("current") or {}
    code = current.get("weather_code")
    condition, icon = describe_weather_code(code)
    return {
        "location": location.label,
        "temperature": round_half_up(current.get("temperature_2m") or 0),
        "condition": condition,
        "icon": icon,
        "weatherCode": code,
        "windSpeed": round_half_up(current.get("wind_speed_10m") or 0),
        "lastUpdated": current.get("time"),
    }
