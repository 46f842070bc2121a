"""
Pytest configuration and shared fixtures for the MyFleet test suite.

This module provides:
- Database fixtures (in-memory SQLite for fast tests)
- Settings and collaborator overrides (OTP sender, payment gateway)
- An httpx AsyncClient bound to the FastAPI app
- Data factories for owners, vehicles and drivers
"""

import dataclasses
from typing import AsyncGenerator, List, Tuple
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers every table on Base.metadata
from auth.dependencies import get_sms_sender
from auth.otp_sender import OtpSender
from core.db import Base, get_db
from core.environment import get_settings
from core.session import SessionEvent, SessionStore, session_registry
from main import create_app
from middleware.rate_limit import limiter
from models.user import Profile
from routers.subscriptions import get_payment_gateway
from services.exceptions import OtpDeliveryError

# Test Database Configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OWNER_PHONE = "9876543210"


class FakeOtpSender(OtpSender):
    """Records every dispatched code instead of sending an SMS."""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail = False

    async def send(self, phone: str, code: str, expiry_minutes: int) -> None:
        if self.fail:
            raise OtpDeliveryError()
        self.sent.append((phone, code))

    def last_code(self, phone: str) -> str:
        return next(code for sent_to, code in reversed(self.sent) if sent_to == phone)


@pytest.fixture
async def async_engine():
    """Create async engine for testing with in-memory SQLite."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for testing."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session


@pytest.fixture
def test_settings():
    # Differs from the environment secret, so tokens only verify through the settings override
    return dataclasses.replace(
        get_settings(),
        jwt_secret="test-only-jwt-secret",
        database_url=TEST_DATABASE_URL,
        otp_length=6,
        otp_expiry_minutes=5,
        otp_max_attempts=3,
        otp_max_requests_per_hour=5,
        sms_gateway_url=None,
        onboarding_identity_field="pan",
        trial_days=30,
        require_subscription=False,
        payment_gateway_url="https://payments.test/pg",
        payment_client_id="client-id",
        payment_client_secret="client-secret",
        payment_webhook_secret="whsec_test",
    )


@pytest.fixture
def otp_sender() -> FakeOtpSender:
    return FakeOtpSender()


@pytest.fixture
def mock_payment_gateway():
    gateway = AsyncMock()
    gateway.create_order.return_value = {
        "payment_session_id": "session_test_123",
        "payment_link": None,
        "mode": "sandbox",
    }
    return gateway


@pytest.fixture
def test_app(async_db_session, test_settings, otp_sender, mock_payment_gateway):
    app = create_app()

    async def override_get_db():
        yield async_db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_sms_sender] = lambda: otp_sender
    app.dependency_overrides[get_payment_gateway] = lambda: mock_payment_gateway

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client bound to the test app."""
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client


@pytest.fixture(autouse=True)
def reset_process_state():
    yield
    session_registry.clear()
    limiter.reset()


# Test Data Factories
@pytest.fixture
async def owner_id(async_db_session) -> str:
    """An onboarded owner without a subscription; returns the profile id."""
    profile = Profile(
        phone=OWNER_PHONE,
        full_name="Test Owner",
        pan_number="ABCDE1234F",
        is_onboarded=True,
    )
    async_db_session.add(profile)
    await async_db_session.commit()
    return profile.id


@pytest.fixture
def session_store(owner_id) -> SessionStore:
    store = SessionStore("test-session")
    store.handle_auth_state_change(SessionEvent.SIGNED_IN, owner_id)
    return store


# Authentication helpers
async def login(client: AsyncClient, sender: FakeOtpSender, phone: str = OWNER_PHONE) -> dict:
    """Runs the OTP flow and returns the verify response body."""
    resp = await client.post("/auth/otp/send", json={"phone": phone})
    assert resp.status_code == 200, resp.text

    resp = await client.post("/auth/otp/verify", json={"phone": phone, "code": sender.last_code(phone)})
    assert resp.status_code == 200, resp.text
    return resp.json()


def bearer(body: dict) -> dict:
    return {"Authorization": f"Bearer {body['access_token']}"}


@pytest.fixture
async def auth_headers(async_client, otp_sender) -> dict:
    """Headers for a freshly signed-in, not yet onboarded owner."""
    return bearer(await login(async_client, otp_sender))


@pytest.fixture
async def onboarded_headers(async_client, auth_headers) -> dict:
    """Headers for an owner who completed onboarding with vehicle KA01AB1234."""
    resp = await async_client.post(
        "/auth/onboarding",
        json={
            "full_name": "Test Owner",
            "registration_number": "KA 01 AB 1234",
            "pan_number": "abcde1234f",
        },
        headers=auth_headers,
    )
    assert resp.status_code == 200, resp.text
    return auth_headers