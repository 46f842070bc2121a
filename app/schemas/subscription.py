from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, HttpUrl

from models.enums import PaymentStatus, SubscriptionTier


class PlanOut(BaseModel):
    id: SubscriptionTier
    name: str
    price: Decimal
    months: int
    days: int


class CheckoutRequest(BaseModel):
    plan: SubscriptionTier = Field(..., description="semiannual or annual")
    return_url: HttpUrl


class CheckoutOut(BaseModel):
    order_id: str
    payment_session_id: Optional[str] = None
    payment_link: Optional[str] = None
    mode: str


class PaymentWebhook(BaseModel):
    order_id: str
    status: PaymentStatus
