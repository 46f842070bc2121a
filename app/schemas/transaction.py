from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.enums import PaymentMethod, TransactionCategory, TransactionType, category_for
from schemas.common import apply_rule
from services.validators import BusinessRules


def _strip_description(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Description is required")
    return v


class TransactionCreate(BaseModel):
    date: date_type
    vehicle_id: Optional[str] = None
    type: TransactionType
    amount: Decimal = Field(..., decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    reference: Optional[str] = None
    location: Optional[str] = None
    category: Optional[TransactionCategory] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    is_manual: bool = True

    @field_validator('amount')
    def valid_amount(cls, v):
        return apply_rule(BusinessRules.validate_amount, v)

    @field_validator('description')
    def description_not_blank(cls, v):
        return _strip_description(v)

    @model_validator(mode='after')
    def category_matches_type(self):
        expected = category_for(self.type)
        if self.category is None:
            self.category = expected
        elif self.category != expected:
            raise ValueError(f"A {self.type.value} transaction must be categorised as {expected.value}")
        return self


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Optional[date_type] = None
    vehicle_id: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    reference: Optional[str] = None
    location: Optional[str] = None
    category: Optional[TransactionCategory] = None
    payment_method: Optional[PaymentMethod] = None

    @field_validator('description')
    def description_not_blank(cls, v):
        return _strip_description(v)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    date: date_type
    vehicle_id: Optional[str] = None
    vehicle_number: Optional[str] = None
    type: TransactionType
    amount: Decimal
    description: str
    reference: Optional[str] = None
    location: Optional[str] = None
    category: TransactionCategory
    payment_method: PaymentMethod
    is_manual: bool
    created_at: datetime
