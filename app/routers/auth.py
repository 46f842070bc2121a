from fastapi import APIRouter, Depends, Request

from auth.dependencies import CurrentSession, get_auth_service, get_current_session
from core.session import SessionEvent
from middleware.rate_limit import OTP_SEND_LIMIT, limiter
from schemas.auth import (
    AuthStateOut,
    OnboardingRequest,
    PreferencesRequest,
    ProfileOut,
    SendOtpOut,
    SendOtpRequest,
    TokenOut,
    VerifyOtpRequest,
)
from schemas.vehicle import VehicleOut
from services.auth_service import AuthService, AuthState, derive_auth_state

router = APIRouter(prefix="/auth", tags=["auth"])


def _state_out(profile) -> AuthStateOut:
    return AuthStateOut(state=derive_auth_state(profile).value, profile=ProfileOut.from_profile(profile))


@router.post("/otp/send", response_model=SendOtpOut)
@limiter.limit(OTP_SEND_LIMIT)
async def send_otp(request: Request, body: SendOtpRequest, service: AuthService = Depends(get_auth_service)):
    """Send or resend a login code. Calling again invalidates the previous code."""
    sent = await service.send_otp_core(body.phone)
    return SendOtpOut(state=AuthState.OTP_PENDING.value, **sent)


@router.post("/otp/verify", response_model=TokenOut)
async def verify_otp(body: VerifyOtpRequest, service: AuthService = Depends(get_auth_service)):
    login = await service.verify_otp_core(body.phone, body.code)
    state = _state_out(login.profile)
    return TokenOut(access_token=login.access_token, state=state.state, profile=state.profile)


@router.get("/me", response_model=AuthStateOut)
async def me(current: CurrentSession = Depends(get_current_session)):
    return _state_out(current.profile)


@router.post("/onboarding")
async def complete_onboarding(
    body: OnboardingRequest,
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
):
    profile, vehicle = await service.complete_onboarding_core(current.profile, body)

    profile_out = ProfileOut.from_profile(profile)
    vehicle_out = VehicleOut.from_model(vehicle)
    current.store.handle_auth_state_change(SessionEvent.USER_UPDATED, profile.id, profile_out)
    vehicles = current.store.cache("vehicles")
    if vehicles.loaded:
        vehicles.upsert(vehicle_out)

    return {
        "state": derive_auth_state(profile).value,
        "profile": profile_out,
        "vehicle": vehicle_out,
    }


@router.patch("/me/preferences", response_model=AuthStateOut)
async def update_preferences(
    body: PreferencesRequest,
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
):
    profile = await service.update_preferences_core(current.profile, body.preferred_language)
    current.store.handle_auth_state_change(SessionEvent.USER_UPDATED, profile.id, ProfileOut.from_profile(profile))
    return _state_out(profile)


@router.post("/logout")
async def logout(
    current: CurrentSession = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
):
    await service.logout_core(current.session_id)
    return {"state": AuthState.UNAUTHENTICATED.value}
