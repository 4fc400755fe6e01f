# services/geocoding.py — координаты по адресу или ZIP (статическая таблица, затем Nominatim)
import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

ZIP_IN_ADDRESS = re.compile(r"\b\d{5}\b")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float
    source: str = "zip_table"


# Запасная таблица ZIP -> координаты, используется до обращения к геокодеру
ZIP_COORDINATES: dict[str, tuple[float, float]] = {
    "10001": (40.7505, -73.9934),
    "10002": (40.7159, -73.9848),
    "10003": (40.7310, -73.9967),
    "10004": (40.6892, -74.0445),
    "10005": (40.7074, -74.0113),
    "10022": (40.7580, -73.9694),
    "90001": (33.9744, -118.2481),
    "90002": (33.9496, -118.2471),
    "90003": (33.9446, -118.2726),
    "90004": (34.0736, -118.2984),
    "90012": (34.0522, -118.2437),
    "90028": (34.1016, -118.3356),
    "90210": (34.0736, -118.4004),
    "94102": (37.7849, -122.4094),
    "60601": (41.8825, -87.6441),
    "33139": (25.7907, -80.1300),
    "78701": (30.2672, -97.7431),
    "98101": (47.6062, -122.3321),
    "02101": (42.3551, -71.0656),
    "85001": (33.4484, -112.0740),
    "80202": (39.7392, -104.9903),
    "92260": (33.8303, -116.5453),
}


def lookup_zip(zip_code: Optional[str]) -> Optional[Coordinates]:
    if not zip_code:
        return None
    coords = ZIP_COORDINATES.get(zip_code.strip())
    if coords is None:
        return None
    return Coordinates(lat=coords[0], lng=coords[1])


async def geocode(
    address: Optional[str] = None,
    zip_code: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[Coordinates]:
    """
    Координаты по адресу.

    Порядок: явный ZIP по таблице, ZIP из текста адреса по таблице, затем
    HTTP-геокодер с таймаутом GEOCODER_TIMEOUT. Ошибка геокодера пишется
    в лог, результат в этом случае None ("нет координат").
    """
    coords = lookup_zip(zip_code)
    if coords:
        return coords

    if address:
        match = ZIP_IN_ADDRESS.search(address)
        if match:
            coords = lookup_zip(match.group(0))
            if coords:
                return coords

    query = address or zip_code
    if not query:
        return None

    params = {"format": "json", "q": query, "limit": 1}
    headers = {"User-Agent": settings.GEOCODER_USER_AGENT}
    try:
        if client is not None:
            r = await client.get(settings.GEOCODER_URL, params=params, headers=headers, timeout=settings.GEOCODER_TIMEOUT)
        else:
            async with httpx.AsyncClient(timeout=settings.GEOCODER_TIMEOUT) as own_client:
                r = await own_client.get(settings.GEOCODER_URL, params=params, headers=headers)
        r.raise_for_status()
        data = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Geocoder failed for {query!r}: {e}")
        return None

    if not data:
        logger.debug(f"Geocoder returned nothing for {query!r}")
        return None
    try:
        return Coordinates(lat=float(data[0]["lat"]), lng=float(data[0]["lon"]), source="geocoder")
    except (KeyError, TypeError, ValueError, IndexError) as e:
        logger.warning(f"Unexpected geocoder payload for {query!r}: {e}")
        return None
