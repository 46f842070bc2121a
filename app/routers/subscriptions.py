import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import CurrentSession, get_current_session
from auth.rbac import Permission, has_permission
from core.db import get_db
from core.environment import Settings, get_settings
from core.session import SessionEvent
from schemas.auth import AuthStateOut, ProfileOut
from schemas.subscription import CheckoutOut, CheckoutRequest, PaymentWebhook, PlanOut
from services.auth_service import derive_auth_state
from services.exceptions import RoleNotAllowedError
from services.payment_gateway import PaymentGateway, verify_webhook_signature
from services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> PaymentGateway:
    return PaymentGateway(settings)


def get_subscription_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> SubscriptionService:
    return SubscriptionService(db, settings, gateway)


def _require_subscriber(current: CurrentSession) -> CurrentSession:
    if not has_permission(current.profile.role, Permission.MANAGE_SUBSCRIPTION):
        raise RoleNotAllowedError()
    return current


@router.get("/plans", response_model=List[PlanOut])
async def list_plans(service: SubscriptionService = Depends(get_subscription_service)):
    return [
        PlanOut(id=plan.id, name=plan.name, price=plan.price, months=plan.months, days=plan.days)
        for plan in service.list_plans()
    ]


@router.post("/trial", response_model=AuthStateOut)
async def start_trial(
    current: CurrentSession = Depends(get_current_session),
    service: SubscriptionService = Depends(get_subscription_service),
):
    _require_subscriber(current)
    profile = await service.start_trial_core(current.profile)
    profile_out = ProfileOut.from_profile(profile)
    current.store.handle_auth_state_change(SessionEvent.USER_UPDATED, profile.id, profile_out)
    return AuthStateOut(state=derive_auth_state(profile).value, profile=profile_out)


@router.post("/checkout", response_model=CheckoutOut)
async def checkout(
    body: CheckoutRequest,
    current: CurrentSession = Depends(get_current_session),
    service: SubscriptionService = Depends(get_subscription_service),
):
    _require_subscriber(current)
    return await service.create_checkout_core(current.profile, body.plan, str(body.return_url))


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Gateway callback. The body is authenticated with an HMAC-SHA256 signature over timestamp + body."""
    body = await request.body()
    if not verify_webhook_signature(
        settings.payment_webhook_secret,
        request.headers.get("x-webhook-timestamp"),
        body,
        request.headers.get("x-webhook-signature"),
    ):
        logger.warning("Rejected payment webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature.")

    try:
        event = PaymentWebhook.model_validate_json(body)
    except PydanticValidationError:
        raise HTTPException(status_code=400, detail="Malformed webhook payload.")

    order = await service.confirm_payment_core(event.order_id, event.status)
    return {"order_id": order.id, "status": order.status}
