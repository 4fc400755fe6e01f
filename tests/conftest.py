# tests/conftest.py — общие фикстуры: временная SQLite, сессия, пользователь, клиент API
import copy

import pytest
import httpx

from database.models import Profile
from database.session import create_engine_for, get_session, init_db, make_session_maker
from filters.taxonomy import get_taxonomy
from middlewares.rate_limiter import write_rate_limiter
from services.context import AuthContext, Registrant
from utils.cache import get_cache
from web.auth import issue_token


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_state():
    get_cache().clear()
    write_rate_limiter.reset()
    yield
    get_cache().clear()
    write_rate_limiter.reset()


@pytest.fixture
def taxonomy():
    return get_taxonomy()


@pytest.fixture
def registrant():
    return Registrant(id="user-1", email="jane@example.com", display_name="Jane Doe")


@pytest.fixture
def auth(registrant):
    return AuthContext(registrant=registrant)


@pytest.fixture
async def make_profile(session):
    async def factory(profile_id: str, **fields) -> Profile:
        profile = Profile(id=profile_id, **fields)
        session.add(profile)
        await session.commit()
        return profile

    return factory


@pytest.fixture
def app(session_maker):
    from web.main import create_app

    application = create_app()

    async def override_session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def auth_headers(registrant):
    token = issue_token(registrant.id, registrant.email, registrant.display_name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    def build(user_id: str, email: str = None, name: str = None) -> dict:
        return {"Authorization": f"Bearer {issue_token(user_id, email, name)}"}

    return build


SIGNATURE = {"signature_data": "data:image/png;base64,iVBORw0KGgo=", "name_printed": "Jane Doe", "name_signed": "Jane Doe"}

VALID_STEP_VALUES = {
    "identity": {
        "id_country": "US",
        "id_state": "CA",
        "id_number": "D1234567",
        "files": ["https://files.example.com/ids/front.jpg", "https://files.example.com/ids/back.jpg"],
    },
    "personal": {
        "last_name": "Doe",
        "first_name": "Jane",
        "birthday": "1985-04-12",
        "phone": "+1 555 0100",
        "email": "jane@example.com",
        "mailing_address": "1 Main St, Los Angeles, CA 90012",
        "languages": ["English", "Spanish"],
    },
    "business": {
        "company_name": "Doe Realty",
        "years_of_experience": 12,
        "service_areas": [{"zip_code": "90012", "radius_miles": 30}, {"zip_code": "90210"}],
    },
    "licenses": {
        "license_country": "US",
        "license_state": "CA",
        "license_number": "LIC-778",
        "active_since": "2015-01-01",
        "expiration_date": "2027-01-01",
        "files": ["https://files.example.com/licenses/lic.pdf"],
    },
    "insurance": {"files": ["https://files.example.com/insurance/eo.pdf"]},
    "rankings": {"rankings": {"stamper": 5, "professional": 1, "agent": 2, "mortgage": 3, "trade": 4}},
    "payment": {"payment_packet": "monthly", "tier_package": "standard", "payment_methods": ["cash", "credit"]},
    "legal": {
        "signatures": {
            doc: dict(SIGNATURE)
            for doc in ("terms_of_service", "privacy_policy", "no_recruit", "non_compete")
        }
    },
}


@pytest.fixture
def step_values():
    """Корректные значения для каждого шага мастера (копия на тест)."""
    return copy.deepcopy(VALID_STEP_VALUES)
