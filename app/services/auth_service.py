import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.auth_handler import sign_jwt
from auth.otp_sender import OtpSender, get_otp_sender
from auth.passwords_handler import hash_otp_async, verify_otp_async
from core.clock import utc_now
from core.environment import Settings
from core.metrics import track_performance
from core.prometheus_metrics import prometheus_collector
from core.session import session_registry
from models.auth_session import AuthSession
from models.enums import Language, UserRole
from models.otp import OtpCode
from models.user import Profile
from models.vehicle import Vehicle
from schemas.auth import OnboardingRequest
from schemas.vehicle import AddVehicleRequest
from services.exceptions import (
    AlreadyOnboardedError,
    DatabaseQueryError,
    FleetDomainError,
    FleetValidationError,
    InvalidOtpError,
    NotAuthenticatedError,
    OtpDeliveryError,
    OtpExpiredError,
    RateLimitedError,
    TooManyAttemptsError,
)
from services.validators import BusinessRules
from services.vehicle_service import VehicleService

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    OTP_PENDING = "otp_pending"
    AUTHENTICATED = "authenticated"
    ONBOARDED = "onboarded"
    SUBSCRIBED = "subscribed"


def derive_auth_state(profile: Optional[Profile], now: Optional[datetime] = None) -> AuthState:
    """State of a signed-in profile. OTP_PENDING only exists between send and verify."""
    if profile is None:
        return AuthState.UNAUTHENTICATED
    if not profile.is_onboarded:
        return AuthState.AUTHENTICATED
    if profile.has_active_subscription(now or utc_now()):
        return AuthState.SUBSCRIBED
    return AuthState.ONBOARDED


@dataclass
class VerifiedLogin:
    profile: Profile
    auth_session: AuthSession
    access_token: str


class AuthService:
    """
    Phone/OTP authentication, onboarding and auth-session lifecycle.

    Codes are stored only as bcrypt hashes and are never logged outside the
    development sender.
    """

    def __init__(self, db: AsyncSession, settings: Settings, otp_sender: Optional[OtpSender] = None):
        self.db = db
        self.settings = settings
        self._otp_sender = otp_sender

    @property
    def otp_sender(self) -> OtpSender:
        if self._otp_sender is None:
            self._otp_sender = get_otp_sender(self.settings)
        return self._otp_sender

    def _generate_code(self) -> str:
        return "".join(secrets.choice("0123456789") for _ in range(self.settings.otp_length))

    @track_performance(service_name="AuthService")
    async def send_otp_core(self, phone: str) -> dict:
        """
        Issues a fresh code for `phone` and dispatches it by SMS. Resend is the same call.

        Raises:
            FleetValidationError: phone is not 10 digits
            RateLimitedError: hourly request budget for the phone is used up
            OtpDeliveryError: the SMS gateway failed; no code remains stored
        """
        phone = BusinessRules.normalize_phone(phone)
        now = utc_now()

        try:
            recent = (
                await self.db.execute(
                    select(func.count(OtpCode.id)).where(
                        OtpCode.phone == phone,
                        OtpCode.created_at > now - timedelta(hours=1),
                    )
                )
            ).scalar()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if recent >= self.settings.otp_max_requests_per_hour:
            prometheus_collector.record_otp("rate_limited")
            raise RateLimitedError(field="phone")

        code = self._generate_code()
        try:
            # Only the newest code is ever valid
            await self.db.execute(
                update(OtpCode)
                .where(OtpCode.phone == phone, OtpCode.is_used == False)  # noqa: E712
                .values(is_used=True)
            )
            self.db.add(OtpCode(
                phone=phone,
                code_hash=await hash_otp_async(code),
                expires_at=now + timedelta(minutes=self.settings.otp_expiry_minutes),
                attempts=0,
                is_used=False,
                created_at=now,
            ))
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        try:
            await self.otp_sender.send(phone, code, self.settings.otp_expiry_minutes)
        except OtpDeliveryError:
            await self.db.rollback()
            prometheus_collector.record_otp("delivery_failed")
            raise

        await self._commit()
        prometheus_collector.record_otp("sent")

        return {
            "phone": phone,
            "expires_in_seconds": self.settings.otp_expiry_minutes * 60,
        }

    @track_performance(service_name="AuthService")
    async def verify_otp_core(self, phone: str, code: str) -> VerifiedLogin:
        """
        Checks `code` against the newest live code for `phone`.

        A wrong code only increments the attempt counter; no profile or session
        is created. On success the code is consumed, the profile is fetched or
        created, and a new auth session with its bearer token is returned.
        """
        phone = BusinessRules.normalize_phone(phone)
        code = BusinessRules.validate_otp_code(code)
        now = utc_now()

        try:
            otp = (
                await self.db.execute(
                    select(OtpCode)
                    .where(
                        OtpCode.phone == phone,
                        OtpCode.is_used == False,  # noqa: E712
                        OtpCode.expires_at > now,
                    )
                    .order_by(OtpCode.created_at.desc(), OtpCode.id.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if otp is None:
            prometheus_collector.record_otp("rejected")
            raise OtpExpiredError(field="code")

        if otp.attempts >= self.settings.otp_max_attempts:
            prometheus_collector.record_otp("rejected")
            raise TooManyAttemptsError(field="code")

        if not await verify_otp_async(code, otp.code_hash):
            otp.attempts += 1
            await self._commit()
            prometheus_collector.record_otp("rejected")
            raise InvalidOtpError(field="code")

        otp.is_used = True
        otp.used_at = now

        profile = (await self.db.execute(select(Profile).where(Profile.phone == phone))).scalar_one_or_none()
        if profile is None:
            profile = Profile(
                phone=phone,
                role=UserRole.OWNER.value,
                is_onboarded=False,
                subscription_active=False,
                trial_used=False,
                preferred_language=Language.ENGLISH.value,
            )
            self.db.add(profile)
            await self.db.flush()

        auth_session = AuthSession(user_id=profile.id, created_at=now)
        self.db.add(auth_session)
        await self._commit()
        await self.db.refresh(profile)

        prometheus_collector.record_otp("verified")
        logger.info("User signed in", extra={'owner_id': profile.id, 'session_id': auth_session.id})

        token = sign_jwt(profile.id, auth_session.id, self.settings)["access_token"]
        return VerifiedLogin(profile=profile, auth_session=auth_session, access_token=token)

    async def resolve_session_core(self, session_id: str, user_id: str) -> Tuple[AuthSession, Profile]:
        """Loads a live auth session and its profile, or raises NotAuthenticatedError."""
        try:
            auth_session = (
                await self.db.execute(
                    select(AuthSession).where(AuthSession.id == session_id, AuthSession.user_id == user_id)
                )
            ).scalar_one_or_none()
            if auth_session is None or auth_session.revoked_at is not None:
                raise NotAuthenticatedError()

            profile = (await self.db.execute(select(Profile).where(Profile.id == user_id))).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if profile is None:
            raise NotAuthenticatedError()
        return auth_session, profile

    @track_performance(service_name="AuthService")
    async def complete_onboarding_core(self, profile: Profile, data: OnboardingRequest) -> Tuple[Profile, Vehicle]:
        """
        Fills in the profile and creates the first vehicle in one commit.

        A failure anywhere rolls back both writes and the profile stays
        un-onboarded. A second submission is rejected without creating a vehicle.
        """
        if profile.is_onboarded:
            raise AlreadyOnboardedError()

        if self.settings.onboarding_identity_field == "email":
            if not data.email:
                raise FleetValidationError("Email is required", field="email")
        elif not data.pan_number:
            raise FleetValidationError("PAN number is required", field="pan_number")

        try:
            profile.full_name = data.full_name
            profile.company_name = data.company_name
            if data.pan_number:
                profile.pan_number = data.pan_number
            if data.email:
                profile.email = str(data.email)
            profile.is_onboarded = True

            vehicle = await VehicleService(self.db, profile.id).stage_vehicle_core(
                AddVehicleRequest(registration_number=data.registration_number)
            )
            await self.db.commit()
        except IntegrityError as e:
            await self._rollback_profile(profile)
            raise AlreadyOnboardedError() from e
        except FleetDomainError:
            await self._rollback_profile(profile)
            raise
        except SQLAlchemyError as e:
            await self._rollback_profile(profile)
            raise DatabaseQueryError(str(e))

        await self.db.refresh(profile)
        logger.info("Onboarding completed", extra={'owner_id': profile.id})
        return profile, vehicle

    @track_performance(service_name="AuthService")
    async def update_preferences_core(self, profile: Profile, language: Language) -> Profile:
        profile.preferred_language = Language(language).value
        await self._commit()
        await self.db.refresh(profile)
        return profile

    @track_performance(service_name="AuthService")
    async def logout_core(self, session_id: str) -> None:
        """Revokes the auth session and drops its in-memory store and caches."""
        auth_session = (
            await self.db.execute(select(AuthSession).where(AuthSession.id == session_id))
        ).scalar_one_or_none()
        if auth_session is not None and auth_session.revoked_at is None:
            auth_session.revoked_at = utc_now()
            await self._commit()

        session_registry.drop(session_id)
        logger.info("User signed out", extra={'session_id': session_id})

    async def _rollback_profile(self, profile: Profile):
        # Rollback expires the instance; reload so callers can still read it
        await self.db.rollback()
        await self.db.refresh(profile)

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
