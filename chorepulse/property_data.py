"""
Property facts lookup through the RentCast API.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import requests

from chorepulse.timefmt import iso

logger = logging.getLogger(__name__)

RENTCAST_URL = "https://api.rentcast.io/v1/properties"
REQUEST_TIMEOUT = 30

# (response key, RentCast feature key)
FEATURE_FIELDS = (
    ("architectureType", "architectureType"),
    ("floorCount", "floorCount"),
    ("roomCount", "roomCount"),
    ("unitCount", "unitCount"),
    ("hasCooling", "cooling"),
    ("coolingType", "coolingType"),
    ("hasHeating", "heating"),
    ("heatingType", "heatingType"),
    ("hasFireplace", "fireplace"),
    ("fireplaceType", "fireplaceType"),
    ("hasGarage", "garage"),
    ("garageType", "garageType"),
    ("garageSpaces", "garageSpaces"),
    ("hasPool", "pool"),
    ("poolType", "poolType"),
    ("exteriorType", "exteriorType"),
    ("roofType", "roofType"),
    ("foundationType", "foundationType"),
    ("viewType", "viewType"),
)


class PropertyLookupError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


def _first(*values):
    for value in values:
        if value not in (None, "", 0):
            return value
    return None


def map_property(prop: dict) -> dict:
    features = prop.get("features") or {}
    mapped = {
        "bedrooms": _first(prop.get("bedrooms")),
        "bathrooms": _first(prop.get("bathrooms")),
        "squareFeet": _first(prop.get("squareFootage"), prop.get("livingArea")),
        "lotSizeSqft": _first(prop.get("lotSize")),
        "propertyType": _first(prop.get("propertyType")),
        "yearBuilt": _first(prop.get("yearBuilt")),
        "propertyValue": _first(prop.get("value"), prop.get("price")),
        "lastSalePrice": _first(prop.get("lastSalePrice")),
        "lastSaleDate": _first(prop.get("lastSaleDate")),
        "ownerOccupied": prop.get("ownerOccupied"),
        "rentcastPropertyId": _first(prop.get("id")),
        "propertyDataFetchedAt": iso(time.time()),
    }
    for key, source in FEATURE_FIELDS:
        mapped[key] = features.get(source)
    return mapped


def lookup_property(address: str, api_key: str) -> dict:
    try:
        response = requests.get(
            RENTCAST_URL,
            params={"address": address},
            headers={"X-Api-Key": api_key, "Accept": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise PropertyLookupError("Failed to fetch property data from RentCast") from e

    if response.status_code == 404:
        raise PropertyLookupError(
            "Property not found in database. This may be a new construction or rural property.",
            status_code=404,
        )
    if not response.ok:
        logger.error("RentCast API error %s: %s", response.status_code, response.text[:200])
        raise PropertyLookupError(
            "Failed to fetch property data from RentCast", status_code=response.status_code
        )

    data = response.json()
    prop = (data[0] if data else None) if isinstance(data, list) else data
    if not prop:
        raise PropertyLookupError("No property data found for this address", status_code=404)
    return map_property(prop)


def merge_home_features(features: list[str], mapped: dict) -> list[str]:
    """Add or drop `fireplace`/`pool` according to explicit true/false facts."""
    result = list(features or [])
    for feature, key in (("fireplace", "hasFireplace"), ("pool", "hasPool")):
        value: Optional[bool] = mapped.get(key)
        if value is True and feature not in result:
            result.append(feature)
        elif value is False and feature in result:
            result.remove(feature)
    return result
