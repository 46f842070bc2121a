from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth.auth_bearer import JWTBearer
from auth.otp_sender import OtpSender, get_otp_sender
from auth.rbac import Permission, has_permission
from core.db import get_db
from core.environment import Settings, get_settings
from core.session import SessionEvent, SessionStore, session_registry
from models.user import Profile
from schemas.auth import ProfileOut
from services.auth_service import AuthService
from services.collections import DriverCollection, TransactionCollection, TripCollection, VehicleCollection
from services.exceptions import (
    NotAuthenticatedError,
    OnboardingRequiredError,
    RoleNotAllowedError,
    SubscriptionRequiredError,
)


@dataclass
class CurrentSession:
    session_id: str
    profile: Profile
    store: SessionStore


def get_sms_sender(settings: Settings = Depends(get_settings)) -> OtpSender:
    return get_otp_sender(settings)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sender: OtpSender = Depends(get_sms_sender),
) -> AuthService:
    return AuthService(db, settings, otp_sender=sender)


async def get_current_session(
    request: Request,
    token: str = Depends(JWTBearer()),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CurrentSession:
    """Resolves the bearer token to a live auth session and tells its store who is signed in."""
    payload = request.state.token_payload
    service = AuthService(db, settings)
    try:
        auth_session, profile = await service.resolve_session_core(payload["sid"], payload["user_id"])
    except NotAuthenticatedError:
        # Revoked or deleted server-side; whatever was cached for it goes too
        session_registry.drop(payload["sid"])
        raise HTTPException(status_code=401, detail="Session expired or signed out.")

    store = session_registry.get(auth_session.id)
    event = SessionEvent.USER_UPDATED if store.is_authenticated else SessionEvent.SIGNED_IN
    store.handle_auth_state_change(event, profile.id, ProfileOut.from_profile(profile))
    return CurrentSession(session_id=auth_session.id, profile=profile, store=store)


def require_permission(permission: Permission):
    async def checker(
        current: CurrentSession = Depends(get_current_session),
        settings: Settings = Depends(get_settings),
    ) -> CurrentSession:
        profile = current.profile
        if not has_permission(profile.role, permission):
            raise RoleNotAllowedError()
        if not profile.is_onboarded:
            raise OnboardingRequiredError()
        if settings.require_subscription and not profile.has_active_subscription():
            raise SubscriptionRequiredError()
        return current
    return checker


require_fleet_owner = require_permission(Permission.VIEW_FLEET)


def get_vehicle_collection(
    current: CurrentSession = Depends(require_fleet_owner),
    db: AsyncSession = Depends(get_db),
) -> VehicleCollection:
    return VehicleCollection(db, current.store)


def get_driver_collection(
    current: CurrentSession = Depends(require_permission(Permission.MANAGE_DRIVERS)),
    db: AsyncSession = Depends(get_db),
) -> DriverCollection:
    return DriverCollection(db, current.store)


def get_transaction_collection(
    current: CurrentSession = Depends(require_permission(Permission.MANAGE_TRANSACTIONS)),
    db: AsyncSession = Depends(get_db),
) -> TransactionCollection:
    return TransactionCollection(db, current.store)


def get_trip_collection(
    current: CurrentSession = Depends(require_permission(Permission.MANAGE_TRIPS)),
    db: AsyncSession = Depends(get_db),
) -> TripCollection:
    return TripCollection(db, current.store)
