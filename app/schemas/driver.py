from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.common import apply_rule
from services.validators import BusinessRules


class AddDriverRequest(BaseModel):
    name: str = Field(..., min_length=1)
    license_number: str = Field(..., min_length=4, max_length=20)
    phone: str
    date_of_birth: Optional[date] = None

    @field_validator('name', 'license_number')
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("This field is required")
        return v

    @field_validator('phone')
    def valid_phone(cls, v):
        return apply_rule(BusinessRules.normalize_phone, v)


class UpdateDriverRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    license_number: Optional[str] = Field(None, min_length=4, max_length=20)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None

    @field_validator('phone')
    def valid_phone(cls, v):
        if v is None:
            return v
        return apply_rule(BusinessRules.normalize_phone, v)

    @field_validator('name')
    def name_not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip() if v else v


class DriverOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    license_number: str
    phone: str
    date_of_birth: Optional[date] = None
    assigned_vehicle_ids: List[str] = []
    created_at: datetime
