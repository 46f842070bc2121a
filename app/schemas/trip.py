from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models.enums import TripStatus, TripType
from schemas.common import apply_rule
from services.validators import BusinessRules


def _optional_text(v: Optional[str]) -> Optional[str]:
    return v.strip() if v and v.strip() else None


def _as_utc_naive(v: datetime) -> datetime:
    if v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class TripStop(BaseModel):
    address: str
    landmark: Optional[str] = None

    @field_validator('address')
    def address_required(cls, v):
        return apply_rule(lambda value: BusinessRules.require_text(value, "address", "Address"), v)

    @field_validator('landmark')
    def blank_landmark(cls, v):
        return _optional_text(v)


class Passenger(BaseModel):
    name: str
    phone: str
    email: Optional[EmailStr] = None

    @field_validator('name')
    def name_required(cls, v):
        return apply_rule(lambda value: BusinessRules.require_text(value, "name", "Passenger name"), v)

    @field_validator('phone')
    def valid_phone(cls, v):
        return apply_rule(BusinessRules.normalize_phone, v)

    @field_validator('email', mode='before')
    def blank_email(cls, v):
        return v if v and str(v).strip() else None


class CreateTripRequest(BaseModel):
    pickup: TripStop
    destination: TripStop
    scheduled_start_time: datetime
    type: TripType = TripType.LOCAL
    vehicle_id: str
    # Suggested from the vehicle's assignment when omitted
    driver_id: Optional[str] = None
    passenger: Passenger
    base_fare: Decimal = Field(..., decimal_places=2)
    corporate_account_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('vehicle_id')
    def vehicle_required(cls, v):
        if not v.strip():
            raise ValueError("Vehicle selection is required")
        return v.strip()

    @field_validator('driver_id', 'corporate_account_id', 'notes')
    def blank_is_none(cls, v):
        return _optional_text(v)

    @field_validator('scheduled_start_time')
    def utc_start(cls, v):
        return _as_utc_naive(v)

    @field_validator('base_fare')
    def positive_fare(cls, v):
        v = apply_rule(lambda value: BusinessRules.validate_amount(value, "base_fare"), v)
        if v <= 0:
            raise ValueError("Base fare must be greater than 0")
        return v


class UpdateTripRequest(BaseModel):
    """Partial edit of a scheduled trip. Nested stops and passenger are replaced whole."""
    model_config = ConfigDict(extra="forbid")

    pickup: Optional[TripStop] = None
    destination: Optional[TripStop] = None
    scheduled_start_time: Optional[datetime] = None
    type: Optional[TripType] = None
    vehicle_id: Optional[str] = None
    driver_id: Optional[str] = None
    passenger: Optional[Passenger] = None
    base_fare: Optional[Decimal] = Field(None, decimal_places=2)
    corporate_account_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('scheduled_start_time')
    def utc_start(cls, v):
        return _as_utc_naive(v) if v is not None else v

    @field_validator('base_fare')
    def positive_fare(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Base fare must be greater than 0")
        return v


class TripStatusRequest(BaseModel):
    status: TripStatus


class TripOut(BaseModel):
    id: str
    owner_id: str
    type: TripType
    status: TripStatus
    pickup: TripStop
    destination: TripStop
    scheduled_start_time: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    vehicle_id: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    passenger: Passenger
    base_fare: Decimal
    corporate_account_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, trip) -> "TripOut":
        return cls(
            id=trip.id,
            owner_id=trip.owner_id,
            type=trip.type,
            status=trip.status,
            pickup=TripStop(address=trip.pickup_address, landmark=trip.pickup_landmark),
            destination=TripStop(address=trip.destination_address, landmark=trip.destination_landmark),
            scheduled_start_time=trip.scheduled_start_time,
            started_at=trip.started_at,
            completed_at=trip.completed_at,
            vehicle_id=trip.vehicle_id,
            vehicle_number=trip.vehicle_number,
            driver_id=trip.driver_id,
            driver_name=trip.driver_name,
            passenger=Passenger(name=trip.passenger_name, phone=trip.passenger_phone, email=trip.passenger_email),
            base_fare=Decimal(trip.base_fare),
            corporate_account_id=trip.corporate_account_id,
            notes=trip.notes,
            created_at=trip.created_at,
        )
