# tests/test_search.py — поиск профессионалов и услуг, карточка профиля
import pytest
from sqlalchemy import select

from database.models import (
    Award,
    BusinessInfo,
    PaymentPreference,
    ProfileTag,
    PspType,
    Service,
    ServiceArea,
    UserPspType,
    UserRole,
)
from filters.selection import FilterSelection
from services.errors import NotFoundError, ValidationFailed
from services.profile_service import ProfileService
from services.search_service import SearchService


async def _psp(session, user_id: str, *labels: str) -> None:
    for label in labels:
        psp_id = await session.scalar(select(PspType.id).where(PspType.label == label))
        session.add(UserPspType(user_id=user_id, psp_type_id=psp_id))


@pytest.fixture
async def catalog(session, make_profile):
    """Три исполнителя с разными типами, тегами, ценами и зонами."""
    await make_profile("agent-1", full_name="Alice Agent", hourly_rate=120, referral_fee_percentage=2.5)
    await make_profile("agent-2", full_name="Bob Broker", hourly_rate=40)
    await make_profile("appraiser-1", full_name="Carol Appraiser", hourly_rate=None)
    await _psp(session, "agent-1", "Agent")
    await _psp(session, "agent-2", "Agent", "Broker")
    await _psp(session, "appraiser-1", "Appraiser")
    session.add_all([
        ProfileTag(user_id="agent-1", category="fields", label="Commercial"),
        ProfileTag(user_id="agent-1", category="motive", label="Flip"),
        ProfileTag(user_id="agent-2", category="fields", label="Residential"),
        ProfileTag(user_id="appraiser-1", category="fields", label="Commercial"),
        ServiceArea(user_id="agent-1", zip_code="90012", radius_miles=30),
        ServiceArea(user_id="agent-2", zip_code="99999", radius_miles=10),
        BusinessInfo(user_id="agent-1", company_name="Alice Realty"),
        UserRole(user_id="appraiser-1", role="inspector"),
        Service(provider_id="agent-1", title="Listing package", category="Agent", price=300),
        Service(provider_id="appraiser-1", title="Home appraisal", category="Appraiser", price=450),
        Service(provider_id="agent-2", title="Buyer tour", category="Agent", price=None),
    ])
    await session.commit()


async def test_empty_selection_returns_everyone(session, taxonomy, catalog):
    results = await SearchService.search_profiles(session, FilterSelection.empty(taxonomy))
    assert {r["id"] for r in results} == {"agent-1", "agent-2", "appraiser-1"}


async def test_psp_filter_is_or_within_category(session, taxonomy, catalog):
    selection = FilterSelection(taxonomy, {"psp": ["Appraiser", "Broker"]})
    results = await SearchService.search_profiles(session, selection)
    assert {r["id"] for r in results} == {"agent-2", "appraiser-1"}


async def test_tag_categories_are_and_across(session, taxonomy, catalog):
    selection = FilterSelection(taxonomy, {"fields": ["Commercial"], "psp": ["Agent"]})
    results = await SearchService.search_profiles(session, selection)
    assert [r["id"] for r in results] == ["agent-1"]


async def test_price_range_and_sort(session, taxonomy, catalog):
    empty = FilterSelection.empty(taxonomy)
    results = await SearchService.search_profiles(session, empty, price_min=50, price_max=500)
    assert [r["id"] for r in results] == ["agent-1"]
    ordered = await SearchService.search_profiles(session, empty, sort="price-high")
    assert [r["id"] for r in ordered] == ["agent-1", "agent-2", "appraiser-1"]


async def test_invalid_price_and_sort_rejected(session, taxonomy):
    empty = FilterSelection.empty(taxonomy)
    with pytest.raises(ValidationFailed) as exc:
        await SearchService.search_profiles(session, empty, price_min=100, price_max=10)
    assert exc.value.field == "price_max"
    with pytest.raises(ValidationFailed):
        await SearchService.search_profiles(session, empty, sort="random")


async def test_listing_card_fields(session, taxonomy, catalog):
    results = await SearchService.search_profiles(session, FilterSelection.empty(taxonomy))
    cards = {r["id"]: r for r in results}
    alice = cards["agent-1"]
    assert alice["title"] == "Alice Realty"
    assert alice["provider"] == "Alice Agent"
    assert alice["referral_fee"] == "2.5%"
    assert alice["location"] == "90012"
    assert alice["service_areas"][0]["lat"] == pytest.approx(34.0522)
    assert alice["roles"] == ["Agent"]
    # неизвестный ZIP: зона есть, координат нет
    assert cards["agent-2"]["service_areas"][0]["lat"] is None
    carol = cards["appraiser-1"]
    assert carol["roles"] == ["Appraiser"]
    assert carol["location"] is None
    assert carol["price"] == 0


async def test_search_services_by_category(session, taxonomy, catalog):
    selection = FilterSelection(taxonomy, {"psp": ["Agent"]})
    results = await SearchService.search_services(session, selection)
    assert {r["title"] for r in results} == {"Listing package", "Buyer tour"}
    tour = next(r for r in results if r["title"] == "Buyer tour")
    assert tour["price"] == 0
    assert tour["location"] == "99999"


async def test_search_services_price_filter(session, taxonomy, catalog):
    results = await SearchService.search_services(session, FilterSelection.empty(taxonomy), price_min=400)
    assert [r["title"] for r in results] == ["Home appraisal"]


async def test_profile_view_aggregates(session, catalog):
    session.add(PaymentPreference(user_id="agent-1", accepts_cash=True, accepts_credit=False))
    session.add(Award(recipient_id="agent-1", title="Top Producer"))
    await session.commit()

    view = await ProfileService.get_profile(session, "agent-1", use_cache=False)
    assert view["company_name"] == "Alice Realty"
    assert view["psp_labels"] == ["Agent"]
    assert view["service_areas"] == [{"zip_code": "90012", "radius_miles": 30}]
    assert view["payment_preferences"]["accepts_cash"] is True
    assert [a["title"] for a in view["awards"]] == ["Top Producer"]
    assert [s["title"] for s in view["services"]] == ["Listing package"]
    assert [p["id"] for p in view["related_profiles"]] == ["agent-2"]


async def test_missing_profile_not_found(session):
    with pytest.raises(NotFoundError):
        await ProfileService.get_profile(session, "ghost")


async def test_limit_applies_after_sort(session, taxonomy, catalog):
    empty = FilterSelection.empty(taxonomy)
    top = await SearchService.search_profiles(session, empty, sort="price-high", limit=1)
    assert [r["id"] for r in top] == ["agent-1"]
    cheapest = await SearchService.search_profiles(session, empty, sort="price-low", limit=2)
    assert [r["id"] for r in cheapest] == ["appraiser-1", "agent-2"]
