import dataclasses
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from models.user import Profile
from models.vehicle import Vehicle
from schemas.auth import OnboardingRequest
from services.auth_service import AuthService, AuthState, derive_auth_state
from services.exceptions import (
    AlreadyOnboardedError,
    DatabaseQueryError,
    DuplicateRegistrationError,
    FleetValidationError,
)


@pytest.fixture
async def new_profile(async_db_session) -> Profile:
    profile = Profile(phone="9123456789", is_onboarded=False)
    async_db_session.add(profile)
    await async_db_session.commit()
    return profile


@pytest.fixture
def auth_service(async_db_session, test_settings, otp_sender) -> AuthService:
    return AuthService(async_db_session, test_settings, otp_sender)


def request(**overrides) -> OnboardingRequest:
    data = {
        "full_name": "Asha Rao",
        "company_name": "Rao Logistics",
        "registration_number": "ka 01 ab 1234",
        "pan_number": "abcde1234f",
    }
    data.update(overrides)
    return OnboardingRequest(**data)


async def vehicle_count(db) -> int:
    return (await db.execute(select(func.count(Vehicle.id)))).scalar()


async def test_onboarding_fills_profile_and_creates_vehicle(auth_service, new_profile, async_db_session):
    profile, vehicle = await auth_service.complete_onboarding_core(new_profile, request())

    assert profile.is_onboarded is True
    assert profile.full_name == "Asha Rao"
    assert profile.pan_number == "ABCDE1234F"
    assert vehicle.owner_id == profile.id
    assert vehicle.registration_number == "KA01AB1234"
    assert vehicle.model == "Not specified"
    assert len(vehicle.documents) == 4
    assert derive_auth_state(profile) == AuthState.ONBOARDED


async def test_second_submission_is_rejected(auth_service, new_profile, async_db_session):
    await auth_service.complete_onboarding_core(new_profile, request())

    with pytest.raises(AlreadyOnboardedError):
        await auth_service.complete_onboarding_core(new_profile, request(registration_number="KA05MN4321"))

    assert await vehicle_count(async_db_session) == 1


async def test_vehicle_failure_leaves_profile_untouched(auth_service, new_profile, async_db_session):
    with patch(
        "services.auth_service.VehicleService.stage_vehicle_core",
        side_effect=DuplicateRegistrationError(field="registration_number"),
    ):
        with pytest.raises(DuplicateRegistrationError):
            await auth_service.complete_onboarding_core(new_profile, request())

    assert new_profile.is_onboarded is False
    assert new_profile.full_name is None
    stored = (await async_db_session.execute(select(Profile).where(Profile.id == new_profile.id))).scalar_one()
    assert stored.is_onboarded is False
    assert await vehicle_count(async_db_session) == 0


async def test_database_failure_is_reported_as_collaborator_error(auth_service, new_profile, async_db_session):
    with patch.object(async_db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("gone"))):
        with pytest.raises(DatabaseQueryError):
            await auth_service.complete_onboarding_core(new_profile, request())

    assert new_profile.is_onboarded is False
    assert await vehicle_count(async_db_session) == 0


async def test_pan_required_by_default(auth_service, new_profile):
    with pytest.raises(FleetValidationError) as exc_info:
        await auth_service.complete_onboarding_core(new_profile, request(pan_number=None))
    assert exc_info.value.field == "pan_number"
    assert new_profile.is_onboarded is False


async def test_email_identity_mode(async_db_session, test_settings, otp_sender, new_profile):
    settings = dataclasses.replace(test_settings, onboarding_identity_field="email")
    service = AuthService(async_db_session, settings, otp_sender)

    with pytest.raises(FleetValidationError) as exc_info:
        await service.complete_onboarding_core(new_profile, request(pan_number=None))
    assert exc_info.value.field == "email"

    profile, _ = await service.complete_onboarding_core(
        new_profile, request(pan_number=None, email="asha@raologistics.in")
    )
    assert profile.email == "asha@raologistics.in"


@pytest.mark.parametrize("overrides, message", [
    ({"pan_number": "ABC123"}, "PAN"),
    ({"registration_number": "?"}, "registration"),
    ({"full_name": "  "}, "Full name"),
])
def test_request_validation(overrides, message):
    with pytest.raises(ValueError) as exc_info:
        request(**overrides)
    assert message in str(exc_info.value)
