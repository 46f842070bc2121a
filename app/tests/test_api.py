import dataclasses
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from auth.auth_handler import decode_jwt, sign_jwt
from core.clock import today, utc_now
from core.environment import get_settings
from core.session import session_registry
from models.auth_session import AuthSession
from models.user import Profile
from conftest import OWNER_PHONE, bearer, login


@pytest.mark.asyncio
async def test_login_returns_token_and_state(async_client, otp_sender):
    resp = await async_client.post("/auth/otp/send", json={"phone": OWNER_PHONE})
    assert resp.status_code == 200
    assert resp.json() == {"state": "otp_pending", "phone": OWNER_PHONE, "expires_in_seconds": 300}

    body = await login(async_client, otp_sender)

    assert isinstance(body.get("access_token"), str)
    assert body["state"] == "authenticated"
    assert body["profile"]["is_onboarded"] is False

    me = await async_client.get("/auth/me", headers=bearer(body))
    assert me.status_code == 200
    assert me.json()["profile"]["phone"] == OWNER_PHONE


@pytest.mark.asyncio
async def test_wrong_code_is_401(async_client, otp_sender):
    await async_client.post("/auth/otp/send", json={"phone": OWNER_PHONE})
    code = otp_sender.last_code(OWNER_PHONE)
    wrong = str((int(code) + 1) % 1_000_000).zfill(6)

    resp = await async_client.post("/auth/otp/verify", json={"phone": OWNER_PHONE, "code": wrong})

    assert resp.status_code == 401
    assert resp.json()["error_type"] == "InvalidOtpError"
    assert resp.json()["field"] == "code"


@pytest.mark.asyncio
async def test_otp_send_is_rate_limited_per_address(async_client):
    for i in range(10):
        resp = await async_client.post("/auth/otp/send", json={"phone": f"91234567{i:02d}"})
        assert resp.status_code == 200, resp.text

    resp = await async_client.post("/auth/otp/send", json={"phone": "9123456799"})

    assert resp.status_code == 429
    assert resp.json()["error_type"] == "RateLimitedError"


@pytest.mark.asyncio
async def test_requests_without_token_are_refused(async_client):
    resp = await async_client.get("/vehicles")
    assert resp.status_code in (401, 403)

    resp = await async_client.get("/vehicles", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_fleet_routes_require_onboarding(async_client, auth_headers):
    resp = await async_client.get("/vehicles", headers=auth_headers)
    assert resp.status_code == 403
    assert resp.json()["error_type"] == "OnboardingRequiredError"


@pytest.mark.asyncio
async def test_onboarding_then_fleet_management(async_client, onboarded_headers):
    me = (await async_client.get("/auth/me", headers=onboarded_headers)).json()
    assert me["state"] == "onboarded"

    vehicles = (await async_client.get("/vehicles", headers=onboarded_headers)).json()
    assert [v["registration_number"] for v in vehicles] == ["KA01AB1234"]
    vehicle_id = vehicles[0]["id"]

    resp = await async_client.post(
        "/drivers",
        json={"name": "Ravi Kumar", "license_number": "KA0120230001", "phone": "9123456780"},
        headers=onboarded_headers,
    )
    assert resp.status_code == 201, resp.text
    driver_id = resp.json()["id"]

    resp = await async_client.post(
        f"/vehicles/{vehicle_id}/driver", json={"driver_id": driver_id}, headers=onboarded_headers
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["vehicle"]["driver_id"] == driver_id

    drivers = (await async_client.get("/drivers", headers=onboarded_headers)).json()
    assert drivers[0]["assigned_vehicle_ids"] == [vehicle_id]

    resp = await async_client.put(
        f"/vehicles/{vehicle_id}/documents/insurance",
        json={"status": "uploaded", "expiry_date": "2030-01-31"},
        headers=onboarded_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["documents"]["insurance"]["status"] == "uploaded"

    overview = (await async_client.get("/reports/fleet-overview", headers=onboarded_headers)).json()
    assert overview["total_vehicles"] == 1
    assert overview["compliance_rate"] == 25


@pytest.mark.asyncio
async def test_duplicate_vehicle_is_409(async_client, onboarded_headers):
    resp = await async_client.post("/vehicles", json={"registration_number": "ka-01-ab-1234"}, headers=onboarded_headers)

    assert resp.status_code == 409
    assert resp.json()["message"] == "Vehicle with this number already exists."


@pytest.mark.asyncio
async def test_invalid_body_names_field(async_client, onboarded_headers):
    resp = await async_client.post("/vehicles", json={"registration_number": "??"}, headers=onboarded_headers)

    assert resp.status_code == 422
    body = resp.json()
    assert body["field"] == "registration_number"
    assert body["message"] == "Please enter a valid vehicle registration number"


@pytest.mark.asyncio
async def test_transactions_and_profit_loss(async_client, onboarded_headers):
    vehicle_id = (await async_client.get("/vehicles", headers=onboarded_headers)).json()[0]["id"]
    day = today().isoformat()

    for tx in (
        {"type": "revenue", "amount": "1000", "description": "Trip"},
        {"type": "fuel", "amount": "400", "description": "Diesel"},
    ):
        resp = await async_client.post(
            "/transactions",
            json={"date": day, "vehicle_id": vehicle_id, **tx},
            headers=onboarded_headers,
        )
        assert resp.status_code == 201, resp.text

    listed = (await async_client.get("/transactions", headers=onboarded_headers)).json()
    assert {t["category"] for t in listed} == {"income", "expense"}

    fuel_only = (await async_client.get("/transactions?type=fuel", headers=onboarded_headers)).json()
    assert [t["description"] for t in fuel_only] == ["Diesel"]

    pnl = (await async_client.get("/reports/pnl?period=today", headers=onboarded_headers)).json()
    assert Decimal(pnl["profit"]) == Decimal("1000")
    assert Decimal(pnl["loss"]) == Decimal("400")
    assert Decimal(pnl["net_pnl"]) == Decimal("600")
    assert pnl["is_profit"] is True

    ledgers = (await async_client.get("/reports/ledgers", headers=onboarded_headers)).json()
    assert ledgers[0]["registration_number"] == "KA01AB1234"


@pytest.mark.asyncio
async def test_transaction_filter_rejects_inverted_range(async_client, onboarded_headers):
    resp = await async_client.get(
        "/transactions?start_date=2024-06-10&end_date=2024-06-01", headers=onboarded_headers
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "start_date"


@pytest.mark.asyncio
async def test_driver_role_is_forbidden(async_client, onboarded_headers, async_db_session):
    await async_db_session.execute(update(Profile).where(Profile.phone == OWNER_PHONE).values(role="driver"))
    await async_db_session.commit()

    resp = await async_client.get("/vehicles", headers=onboarded_headers)

    assert resp.status_code == 403
    assert resp.json()["error_type"] == "RoleNotAllowedError"


@pytest.mark.asyncio
async def test_subscription_gate(async_client, test_app, test_settings, onboarded_headers):
    test_app.dependency_overrides[get_settings] = lambda: dataclasses.replace(test_settings, require_subscription=True)

    resp = await async_client.get("/vehicles", headers=onboarded_headers)
    assert resp.status_code == 402

    trial = await async_client.post("/subscriptions/trial", headers=onboarded_headers)
    assert trial.status_code == 200, trial.text
    assert trial.json()["state"] == "subscribed"

    resp = await async_client.get("/vehicles", headers=onboarded_headers)
    assert resp.status_code == 200

    again = await async_client.post("/subscriptions/trial", headers=onboarded_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_checkout_uses_gateway(async_client, onboarded_headers, mock_payment_gateway):
    resp = await async_client.post(
        "/subscriptions/checkout",
        json={"plan": "annual", "return_url": "https://app.myfleet.test/return"},
        headers=onboarded_headers,
    )

    assert resp.status_code == 200, resp.text
    assert resp.json()["payment_session_id"] == "session_test_123"
    mock_payment_gateway.create_order.assert_awaited_once()


@pytest.mark.asyncio
async def test_logout_revokes_token(async_client, onboarded_headers):
    resp = await async_client.post("/auth/logout", headers=onboarded_headers)
    assert resp.status_code == 200
    assert resp.json() == {"state": "unauthenticated"}

    resp = await async_client.get("/auth/me", headers=onboarded_headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_preferences(async_client, auth_headers):
    resp = await async_client.patch("/auth/me/preferences", json={"preferred_language": "kn"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["profile"]["preferred_language"] == "kn"


@pytest.mark.asyncio
async def test_revoked_session_evicts_its_store(async_client, onboarded_headers, async_db_session, test_settings):
    assert (await async_client.get("/vehicles", headers=onboarded_headers)).status_code == 200
    token = onboarded_headers["Authorization"].split(" ", 1)[1]
    session_id = decode_jwt(token, test_settings)["sid"]
    assert session_id in session_registry

    await async_db_session.execute(
        update(AuthSession).where(AuthSession.id == session_id).values(revoked_at=utc_now())
    )
    await async_db_session.commit()

    resp = await async_client.get("/vehicles", headers=onboarded_headers)

    assert resp.status_code == 401
    assert session_id not in session_registry


@pytest.mark.asyncio
async def test_token_must_match_configured_secret(async_client, test_settings):
    foreign = dataclasses.replace(test_settings, jwt_secret="another-secret")
    token = sign_jwt("some-user", "some-session", foreign)["access_token"]

    resp = await async_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_trip_booking_flow(async_client, onboarded_headers):
    vehicle_id = (await async_client.get("/vehicles", headers=onboarded_headers)).json()[0]["id"]
    driver = await async_client.post(
        "/drivers",
        json={"name": "Ravi Kumar", "license_number": "KA0120230001", "phone": "9123456780"},
        headers=onboarded_headers,
    )
    driver_id = driver.json()["id"]
    await async_client.post(f"/vehicles/{vehicle_id}/driver", json={"driver_id": driver_id}, headers=onboarded_headers)

    suggested = await async_client.get(f"/trips/suggested-driver?vehicle_id={vehicle_id}", headers=onboarded_headers)
    assert suggested.json()["id"] == driver_id

    resp = await async_client.post(
        "/trips",
        json={
            "pickup": {"address": "Majestic Bus Stand"},
            "destination": {"address": "Mysuru Palace"},
            "scheduled_start_time": (utc_now() + timedelta(hours=2)).isoformat(),
            "type": "intercity",
            "vehicle_id": vehicle_id,
            "passenger": {"name": "Priya Sharma", "phone": "9845012345"},
            "base_fare": "3500",
        },
        headers=onboarded_headers,
    )
    assert resp.status_code == 201, resp.text
    trip_id = resp.json()["id"]
    assert resp.json()["driver_id"] == driver_id

    resp = await async_client.post(f"/trips/{trip_id}/status", json={"status": "in_progress"}, headers=onboarded_headers)
    assert resp.status_code == 200, resp.text

    in_progress = (await async_client.get("/trips?status=in_progress", headers=onboarded_headers)).json()
    assert [t["id"] for t in in_progress] == [trip_id]
    assert (await async_client.get("/trips?status=scheduled", headers=onboarded_headers)).json() == []

    resp = await async_client.delete(f"/trips/{trip_id}", headers=onboarded_headers)
    assert resp.status_code == 409
    assert resp.json()["error_type"] == "TripInProgressError"


@pytest.mark.asyncio
async def test_trip_booking_requires_fields(async_client, onboarded_headers):
    resp = await async_client.post("/trips", json={"pickup": {"address": "Majestic"}}, headers=onboarded_headers)

    assert resp.status_code == 422
    assert resp.json()["field"] == "destination"
