# tests/test_api.py — HTTP API: авторизация, формат ошибок, основные маршруты
from config import settings
from web.auth import issue_token, verify_token


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["database"] == "ok"
    assert body["filter_categories"] > 0
    assert (await client.get("/health/live")).json() == {"status": "alive"}


async def test_registration_requires_sign_in(client):
    r = await client.get("/api/registration")
    assert r.status_code == 401
    assert r.json()["redirect"] == settings.SIGN_IN_URL
    assert r.headers["Location"] == settings.SIGN_IN_URL


async def test_bad_token_rejected(client):
    r = await client.get("/api/registration", headers={"Authorization": "Bearer forged.token.value"})
    assert r.status_code == 401


def test_token_claims_roundtrip():
    auth = verify_token(issue_token("u-9", "u9@example.com", "U Nine"))
    assert auth.user_id == "u-9"
    assert auth.registrant.display_name == "U Nine"


async def test_token_from_cookie(client):
    r = await client.get("/api/registration", headers={"Cookie": f"session={issue_token('cookie-user')}"})
    assert r.status_code == 200
    assert r.json()["current_step"] == 1


async def test_wizard_flow_over_http(client, auth_headers, step_values):
    r = await client.get("/api/registration", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["step_key"] == "identity"

    r = await client.post(
        "/api/registration/steps/identity/advance",
        json={"values": step_values["identity"]},
        headers=auth_headers,
    )
    assert r.status_code == 200
    assert r.json()["step_key"] == "personal"
    assert r.json()["completion"]["identity"] is True

    r = await client.post("/api/registration/steps/personal/retreat", headers=auth_headers)
    assert r.json()["step_key"] == "identity"

    # после перезагрузки мастер снова на первом незавершённом шаге
    r = await client.get("/api/registration", headers=auth_headers)
    assert r.json()["current_step"] == 2


async def test_blocked_step_returns_field_error(client, auth_headers, step_values):
    values = step_values["identity"]
    values["id_country"] = ""
    r = await client.post(
        "/api/registration/steps/identity/advance",
        json={"values": values},
        headers=auth_headers,
    )
    assert r.status_code == 422
    body = r.json()
    assert body["step"] == "identity"
    assert body["field"] == "id_country"
    assert body["detail"] == "Country is required"


async def test_jump_ahead_rejected(client, auth_headers, step_values):
    r = await client.post(
        "/api/registration/steps/legal/advance",
        json={"values": step_values["legal"]},
        headers=auth_headers,
    )
    assert r.status_code == 422
    assert r.json()["field"] == "step"
    assert r.json()["detail"] == "Please complete Identity Verification first"


async def test_unknown_step_is_404(client, auth_headers):
    r = await client.put("/api/registration/steps/nope", json={"values": {}}, headers=auth_headers)
    assert r.status_code == 404


async def test_malformed_service_areas_are_field_errors(client, auth_headers, step_values):
    for key in ("identity", "personal"):
        r = await client.post(
            f"/api/registration/steps/{key}/advance",
            json={"values": step_values[key]},
            headers=auth_headers,
        )
        assert r.status_code == 200
    values = {"service_areas": ["90012"]}
    r = await client.put("/api/registration/steps/business", json={"values": values}, headers=auth_headers)
    assert r.status_code == 200
    assert [e["field"] for e in r.json()["errors"]] == ["service_areas"]

    r = await client.post("/api/registration/steps/business/advance", json={"values": values}, headers=auth_headers)
    assert r.status_code == 422
    assert r.json()["field"] == "service_areas"


async def test_edit_step_returns_live_errors(client, auth_headers):
    r = await client.put(
        "/api/registration/steps/identity",
        json={"values": {"id_country": "US"}},
        headers=auth_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["valid"] is False
    assert {e["field"] for e in body["errors"]} == {"id_number", "files"}


async def test_payment_toggle(client, auth_headers):
    r = await client.post(
        "/api/registration/payment-methods/toggle",
        json={"selected": ["cash"], "method": "cash"},
        headers=auth_headers,
    )
    assert r.json() == {
        "payment_methods": ["cash"],
        "warnings": ["At least one payment method is required. Keeping cash."],
    }
    r = await client.post(
        "/api/registration/payment-methods/toggle",
        json={"selected": ["cash"], "method": "bitcoin"},
        headers=auth_headers,
    )
    assert r.status_code == 422


async def test_filter_toggle_clears_children(client):
    r = await client.post(
        "/api/filters/toggle",
        json={
            "selection": {"representation": ["Buying"], "buyingTypes": ["Credit"], "creditTypes": ["Need Loan"]},
            "category": "representation",
            "option": "Buying",
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert body["selection"] == {}
    assert "buyingTypes" not in body["visible"]


async def test_filter_toggle_hidden_category(client):
    r = await client.post("/api/filters/toggle", json={"category": "creditTypes", "option": "Need Loan"})
    assert r.status_code == 422
    assert r.json()["field"] == "creditTypes"


async def test_search_with_repeated_params(client, make_profile):
    await make_profile("pro-1", full_name="Pat Pro")
    r = await client.get("/api/search/profiles", params=[("find", "Profile"), ("find", "Agency"), ("sort", "rating")])
    assert r.status_code == 200
    body = r.json()
    assert body["filters"] == {"find": ["Profile", "Agency"]}
    assert body["count"] == 1


async def test_search_rejects_orphan_filter(client):
    r = await client.get("/api/search/profiles", params={"creditTypes": "Need Loan"})
    assert r.status_code == 422


async def test_geocode_requires_input(client):
    r = await client.get("/api/geocode")
    assert r.status_code == 422
    r = await client.get("/api/geocode", params={"zip_code": "60601"})
    assert r.json() == {"found": True, "lat": 41.8825, "lng": -87.6441, "source": "zip_table"}


async def test_review_endpoints(client, make_profile, auth_headers):
    await make_profile("pro-1", full_name="Pat Pro")
    payload = {"rating": 5, "comment": "Closed our deal in two weeks"}
    r = await client.post("/api/profiles/pro-1/reviews", json=payload, headers=auth_headers)
    assert r.status_code == 201
    r = await client.post("/api/profiles/pro-1/reviews", json=payload, headers=auth_headers)
    assert r.status_code == 409
    assert r.json()["detail"] == "You've already reviewed this professional"

    r = await client.get("/api/profiles/pro-1")
    assert r.status_code == 200
    assert r.json()["review_count"] == 1
    assert (await client.get("/api/profiles/ghost")).status_code == 404


async def test_review_field_error(client, make_profile, auth_headers):
    await make_profile("pro-1")
    r = await client.post("/api/profiles/pro-1/reviews", json={"rating": "five", "comment": "x"}, headers=auth_headers)
    assert r.status_code == 422
    assert r.json()["field"] == "rating"


async def test_message_endpoints(client, make_profile, auth_headers, headers_for):
    await make_profile("bob", full_name="Bob")
    r = await client.post(
        "/api/messages",
        json={"recipient_id": "bob", "content": "Is the listing still open?"},
        headers=auth_headers,
    )
    assert r.status_code == 201
    bob = headers_for("bob")
    assert (await client.get("/api/messages/unread-count", headers=bob)).json() == {"count": 1}
    r = await client.post("/api/messages/read", json={"message_ids": [r.json()["id"]]}, headers=bob)
    assert r.json() == {"updated": 1}
    assert (await client.get("/api/messages/unread-count", headers=bob)).json() == {"count": 0}


async def test_write_rate_limit(client, make_profile, auth_headers, monkeypatch):
    from middlewares.rate_limiter import write_rate_limiter

    await make_profile("bob")
    monkeypatch.setattr(write_rate_limiter, "_max_requests", 2)
    statuses = []
    for i in range(3):
        r = await client.post(
            "/api/messages",
            json={"recipient_id": "bob", "content": f"Message number {i}"},
            headers=auth_headers,
        )
        statuses.append(r.status_code)
    assert statuses == [201, 201, 429]
    assert r.headers["Retry-After"] == str(settings.RATE_LIMIT_PERIOD)
