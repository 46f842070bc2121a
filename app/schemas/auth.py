from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models.enums import Language, SubscriptionTier, UserRole
from schemas.common import apply_rule
from services.validators import BusinessRules


class SendOtpRequest(BaseModel):
    phone: str = Field(..., description="10-digit mobile number")


class VerifyOtpRequest(BaseModel):
    phone: str
    code: str = Field(..., description="6-digit one-time code")


class OnboardingRequest(BaseModel):
    full_name: str
    registration_number: str = Field(..., description="Primary vehicle registration number")
    company_name: Optional[str] = None
    pan_number: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator('full_name')
    def full_name_required(cls, v):
        return apply_rule(lambda s: BusinessRules.require_text(s, "full_name", "Full name"), v)

    @field_validator('registration_number')
    def valid_registration(cls, v):
        return apply_rule(BusinessRules.normalize_registration, v)

    @field_validator('pan_number')
    def valid_pan(cls, v):
        if v is None or not v.strip():
            return None
        return apply_rule(BusinessRules.normalize_pan, v)

    @field_validator('company_name')
    def blank_company_is_none(cls, v):
        return v.strip() if v and v.strip() else None


class PreferencesRequest(BaseModel):
    preferred_language: Language


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    phone: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    company_name: Optional[str] = None
    pan_number: Optional[str] = None
    is_onboarded: bool
    role: UserRole
    subscription_active: bool
    subscription_tier: Optional[SubscriptionTier] = None
    subscription_expires_at: Optional[datetime] = None
    preferred_language: Language

    @classmethod
    def from_profile(cls, profile, now: Optional[datetime] = None) -> "ProfileOut":
        out = cls.model_validate(profile)
        # The stored flag is stale once the expiry has passed
        return out.model_copy(update={"subscription_active": profile.has_active_subscription(now)})


class SendOtpOut(BaseModel):
    state: str
    phone: str
    expires_in_seconds: int


class AuthStateOut(BaseModel):
    state: str
    profile: ProfileOut


class TokenOut(AuthStateOut):
    access_token: str
    token_type: str = "bearer"
