from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.enums import DocumentKind, DocumentStatus
from schemas.common import apply_rule
from services.validators import BusinessRules


class AddVehicleRequest(BaseModel):
    registration_number: str = Field(..., description="Registration plate, e.g. KA01AB1234")
    model: Optional[str] = None
    paytap_activation_code: Optional[str] = None

    @field_validator('registration_number')
    def valid_registration(cls, v):
        return apply_rule(BusinessRules.normalize_registration, v)

    @field_validator('model')
    def blank_model_is_unspecified(cls, v):
        return v.strip() if v and v.strip() else None


class UpdateVehicleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    registration_number: Optional[str] = None
    model: Optional[str] = None
    prepaid_balance: Optional[Decimal] = Field(None, ge=0)
    fastag_linked: Optional[bool] = None
    gps_linked: Optional[bool] = None
    last_service_date: Optional[date] = None
    fine_count: Optional[int] = Field(None, ge=0)

    @field_validator('registration_number')
    def valid_registration(cls, v):
        if v is None:
            return v
        return apply_rule(BusinessRules.normalize_registration, v)


class DocumentUpdateRequest(BaseModel):
    status: DocumentStatus
    expiry_date: Optional[date] = None


class BalanceTopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount added to the prepaid balance")
    payment_method: str = "upi"


class AssignDriverRequest(BaseModel):
    driver_id: str


class DocumentOut(BaseModel):
    status: DocumentStatus
    expiry_date: Optional[date] = None


class VehicleOut(BaseModel):
    id: str
    owner_id: str
    registration_number: str
    model: str
    prepaid_balance: Decimal
    fastag_linked: bool
    driver_id: Optional[str] = None
    last_service_date: Optional[date] = None
    gps_linked: bool
    fine_count: int
    documents: Dict[DocumentKind, DocumentOut]
    created_at: datetime

    @classmethod
    def from_model(cls, vehicle) -> "VehicleOut":
        documents = {
            DocumentKind(doc.kind): DocumentOut(status=doc.status, expiry_date=doc.expiry_date)
            for doc in vehicle.documents
        }
        # Any slot without a row counts as missing
        for kind in DocumentKind:
            documents.setdefault(kind, DocumentOut(status=DocumentStatus.MISSING))

        return cls(
            id=vehicle.id,
            owner_id=vehicle.owner_id,
            registration_number=vehicle.registration_number,
            model=vehicle.model,
            prepaid_balance=Decimal(vehicle.prepaid_balance or 0),
            fastag_linked=vehicle.fastag_linked,
            driver_id=vehicle.driver_id,
            last_service_date=vehicle.last_service_date,
            gps_linked=vehicle.gps_linked,
            fine_count=vehicle.fine_count,
            documents=documents,
            created_at=vehicle.created_at,
        )
