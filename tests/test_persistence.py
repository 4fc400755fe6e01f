# tests/test_persistence.py — сохранение шагов: upsert, замена наборов, черновики
from sqlalchemy import func, select

from database.models import (
    BusinessInfo,
    IdentityDocument,
    LicenseCredential,
    PaymentPreference,
    PreferenceRanking,
    Profile,
    RegistrationStep,
    ServiceArea,
)
from services.registration_store import RegistrationStore
from states.registration import BUSINESS, IDENTITY, LICENSES, PAYMENT, PERSONAL, RANKINGS


async def _count(session, model, user_id):
    return await session.scalar(select(func.count()).select_from(model).where(model.user_id == user_id))


async def _save(store, step, values):
    result = step.validate(values)
    assert result.ok, result.failures
    await store.save(step, result.values)
    return result


async def test_saving_same_step_twice_does_not_duplicate(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    await _save(store, IDENTITY, step_values["identity"])
    await _save(store, IDENTITY, step_values["identity"])
    await session.commit()
    assert await _count(session, IdentityDocument, registrant.id) == 2
    assert await _count(session, RegistrationStep, registrant.id) == 1


async def test_resaving_replaces_repeating_rows(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    await _save(store, BUSINESS, step_values["business"])
    values = step_values["business"]
    values["service_areas"] = [{"zip_code": "10001", "radius_miles": 5}]
    values["company_name"] = "Doe & Sons"
    await _save(store, BUSINESS, values)
    await session.commit()

    zips = (await session.execute(select(ServiceArea.zip_code).where(ServiceArea.user_id == registrant.id))).scalars().all()
    assert zips == ["10001"]
    assert await _count(session, BusinessInfo, registrant.id) == 1
    info = await session.scalar(select(BusinessInfo).where(BusinessInfo.user_id == registrant.id))
    assert info.company_name == "Doe & Sons"


async def test_duplicate_zip_codes_collapsed(session, registrant, step_values):
    values = step_values["business"]
    values["service_areas"] = [{"zip_code": "90012"}, {"zip_code": "90012", "radius_miles": 50}]
    result = BUSINESS.validate(values)
    assert result.ok
    assert result.values["service_areas"] == [{"zip_code": "90012", "radius_miles": 25}]


async def test_invalid_zip_reported_per_area(step_values):
    values = step_values["business"]
    values["service_areas"] = [{"zip_code": "9001"}]
    result = BUSINESS.validate(values)
    assert result.first_failure.field == "service_areas.0.zip_code"


async def test_personal_step_updates_profile(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    await _save(store, PERSONAL, step_values["personal"])
    await session.commit()
    profile = await session.get(Profile, registrant.id)
    assert profile.full_name == "Jane Doe"
    assert profile.user_type == "service_provider"
    assert profile.languages == ["English", "Spanish"]
    assert profile.tools_technologies == []


async def test_license_without_files_stores_single_row(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    values = step_values["licenses"]
    values["files"] = []
    await _save(store, LICENSES, values)
    await session.commit()
    rows = (await session.execute(select(LicenseCredential).where(LicenseCredential.user_id == registrant.id))).scalars().all()
    assert len(rows) == 1
    assert rows[0].file_url is None


async def test_rankings_and_payment_upsert(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    await _save(store, RANKINGS, step_values["rankings"])
    await _save(store, RANKINGS, step_values["rankings"])
    await _save(store, PAYMENT, step_values["payment"])
    values = step_values["payment"]
    values["payment_methods"] = ["credit"]
    await _save(store, PAYMENT, values)
    await session.commit()

    assert await _count(session, PreferenceRanking, registrant.id) == 5
    prefs = (await session.execute(select(PaymentPreference).where(PaymentPreference.user_id == registrant.id))).scalars().all()
    assert len(prefs) == 1
    assert prefs[0].accepts_cash is False
    assert prefs[0].accepts_credit is True
    assert (await session.get(Profile, registrant.id)).tier_package == "standard"


async def test_draft_does_not_clear_completion(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    await _save(store, IDENTITY, step_values["identity"])
    await store.save_draft(IDENTITY, {"id_country": "MX"})
    await session.commit()
    state = await session.scalar(
        select(RegistrationStep).where(RegistrationStep.user_id == registrant.id, RegistrationStep.step_key == "identity")
    )
    assert state.completed is True
    assert state.field_values == {"id_country": "MX"}


async def test_step_values_stored_as_json(session, registrant, step_values):
    store = RegistrationStore(session, registrant)
    await _save(store, PERSONAL, step_values["personal"])
    await session.commit()
    state = await session.scalar(
        select(RegistrationStep).where(RegistrationStep.user_id == registrant.id, RegistrationStep.step_key == "personal")
    )
    assert state.field_values["birthday"] == "1985-04-12"


async def test_ensure_profile_uses_registrant_claims(session, registrant):
    store = RegistrationStore(session, registrant)
    profile = await store.ensure_profile()
    assert profile.email == "jane@example.com"
    assert profile.full_name == "Jane Doe"
    assert await store.ensure_profile() is profile


def test_service_areas_of_wrong_shape_are_field_errors():
    result = BUSINESS.validate({"service_areas": ["90012"]})
    assert not result.ok
    assert [f.field for f in result.failures] == ["service_areas"]
    assert result.failures[0].reason == "Service areas must be a list of objects"


async def test_empty_rankings_saved_as_complete(session, registrant):
    store = RegistrationStore(session, registrant)
    await _save(store, RANKINGS, {})
    await session.commit()
    assert await _count(session, PreferenceRanking, registrant.id) == 0
    state = await session.scalar(
        select(RegistrationStep).where(RegistrationStep.user_id == registrant.id, RegistrationStep.step_key == "rankings")
    )
    assert state.completed is True
