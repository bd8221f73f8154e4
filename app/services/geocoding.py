# app/services/geocoding.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import googlemaps

from app import schemas
from app.db import settings

logger = logging.getLogger(__name__)

_gmaps_client: Optional[googlemaps.Client] = None
_gmaps_key: Optional[str] = None


class GeocodingError(Exception):
    """Raised when an address cannot be turned into coordinates."""


@dataclass(frozen=True, slots=True)
class Coordinates:
    lat: float
    lng: float


def _gmaps() -> googlemaps.Client:
    global _gmaps_client, _gmaps_key
    key = settings.google_maps_api_key
    if not key:
        raise GeocodingError("Missing GOOGLE_MAPS_API_KEY")
    if _gmaps_client is None or _gmaps_key != key:
        _gmaps_client = googlemaps.Client(key=key, timeout=settings.courier_timeout_seconds)
        _gmaps_key = key
    return _gmaps_client


def geocode_query(address: schemas.AddressIn) -> str:
    parts = [address.line1, address.area, address.city, address.pincode]
    return " ".join(p.strip() for p in parts if p and p.strip())


async def resolve_coordinates(address: schemas.AddressIn) -> Coordinates:
    if address.latitude is not None and address.longitude is not None:
        return Coordinates(lat=float(address.latitude), lng=float(address.longitude))

    query = geocode_query(address)
    try:
        client = _gmaps()
        results = await asyncio.to_thread(client.geocode, query, region="in")
    except GeocodingError:
        raise
    except Exception as exc:
        logger.warning("Geocoding failed for %r: %s", query, exc)
        raise GeocodingError(f"Geocoding failed: {exc}") from exc

    if not results:
        raise GeocodingError("Geocoding returned no results")
    try:
        location = results[0]["geometry"]["location"]
        return Coordinates(lat=float(location["lat"]), lng=float(location["lng"]))
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise GeocodingError("Geocoding returned an unexpected payload") from exc
