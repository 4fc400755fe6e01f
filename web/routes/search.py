# web/routes/search.py — поиск профессионалов, услуг и геокодирование
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from filters.selection import FilterSelection
from filters.taxonomy import get_taxonomy
from services.errors import ValidationFailed
from services.geocoding import geocode
from services.search_service import SearchService
from utils.validators import FieldFailure

router = APIRouter()


def selection_from_request(request: Request) -> FilterSelection:
    """Выбор фильтров из повторяющихся query-параметров (?fields=Commercial&fields=Other)."""
    params: dict[str, list[str]] = defaultdict(list)
    for key, value in request.query_params.multi_items():
        params[key].append(value)
    return FilterSelection.from_query(get_taxonomy(), params)


@router.get("/search/profiles")
async def search_profiles(
    price_min: Optional[float] = Query(None),
    price_max: Optional[float] = Query(None),
    sort: str = Query("default"),
    selection: FilterSelection = Depends(selection_from_request),
    session: AsyncSession = Depends(get_session),
):
    listings = await SearchService.search_profiles(session, selection, price_min, price_max, sort)
    return {"filters": selection.as_dict(), "count": len(listings), "results": listings}


@router.get("/search/services")
async def search_services(
    price_min: Optional[float] = Query(None),
    price_max: Optional[float] = Query(None),
    selection: FilterSelection = Depends(selection_from_request),
    session: AsyncSession = Depends(get_session),
):
    services = await SearchService.search_services(session, selection, price_min, price_max)
    return {"filters": selection.as_dict(), "count": len(services), "results": services}


@router.get("/geocode")
async def geocode_address(
    address: Optional[str] = Query(None, max_length=512),
    zip_code: Optional[str] = Query(None, max_length=10),
):
    if not address and not zip_code:
        raise ValidationFailed([FieldFailure("address", "Address or ZIP code is required")])
    coords = await geocode(address, zip_code)
    if coords is None:
        return {"found": False, "lat": None, "lng": None, "source": None}
    return {"found": True, "lat": coords.lat, "lng": coords.lng, "source": coords.source}
