import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.environment import Settings
from core.metrics import track_performance
from models.enums import PaymentStatus, SubscriptionTier
from models.payment import PaymentOrder
from models.user import Profile
from services.exceptions import (
    DatabaseQueryError,
    FleetValidationError,
    OnboardingRequiredError,
    PaymentOrderNotFoundError,
    SubscriptionAlreadyActiveError,
    TrialAlreadyUsedError,
)
from services.payment_gateway import PaymentGateway
from services.reports import shift_months

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plan:
    id: SubscriptionTier
    name: str
    price: Decimal
    months: int = 0
    days: int = 0


PAID_PLANS = {
    SubscriptionTier.SEMIANNUAL: Plan(SubscriptionTier.SEMIANNUAL, "6 Months Plan", Decimal("12000"), months=6),
    SubscriptionTier.ANNUAL: Plan(SubscriptionTier.ANNUAL, "Annual Plan", Decimal("24000"), months=12),
}


def add_months(moment: datetime, months: int) -> datetime:
    return datetime.combine(shift_months(moment.date(), months), moment.time())


class SubscriptionService:
    def __init__(self, db: AsyncSession, settings: Settings, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.settings = settings
        self.gateway = gateway or PaymentGateway(settings)

    def list_plans(self) -> List[Plan]:
        trial = Plan(SubscriptionTier.TRIAL, "Free Trial", Decimal("0"), days=self.settings.trial_days)
        return [trial, *PAID_PLANS.values()]

    @track_performance(service_name="SubscriptionService")
    async def start_trial_core(self, profile: Profile) -> Profile:
        """Activates the free trial. Each profile gets exactly one."""
        if not profile.is_onboarded:
            raise OnboardingRequiredError()
        if profile.trial_used:
            raise TrialAlreadyUsedError()
        if profile.has_active_subscription(utc_now()):
            raise SubscriptionAlreadyActiveError()

        profile.subscription_active = True
        profile.subscription_tier = SubscriptionTier.TRIAL.value
        profile.subscription_expires_at = utc_now() + timedelta(days=self.settings.trial_days)
        profile.trial_used = True

        await self._commit()
        await self.db.refresh(profile)
        logger.info("Trial started", extra={'owner_id': profile.id})
        return profile

    @track_performance(service_name="SubscriptionService")
    async def create_checkout_core(self, profile: Profile, plan_id: SubscriptionTier, return_url: str) -> dict:
        """Creates a payment order and asks the gateway for a checkout session."""
        plan = PAID_PLANS.get(SubscriptionTier(plan_id))
        if plan is None:
            raise FleetValidationError("Choose a paid plan", field="plan")
        if not profile.is_onboarded:
            raise OnboardingRequiredError()

        order = PaymentOrder(
            id=f"order_{uuid.uuid4().hex[:20]}",
            user_id=profile.id,
            plan=plan.id.value,
            amount=plan.price,
            status=PaymentStatus.CREATED.value,
            created_at=utc_now(),
        )
        self.db.add(order)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        try:
            checkout = await self.gateway.create_order(
                order_id=order.id,
                amount=plan.price,
                customer_id=profile.id,
                customer_phone=profile.phone,
                customer_email=profile.email,
                return_url=return_url,
            )
        except Exception:
            await self.db.rollback()
            raise

        await self._commit()
        return {"order_id": order.id, **checkout}

    @track_performance(service_name="SubscriptionService")
    async def confirm_payment_core(self, order_id: str, status: PaymentStatus, user_id: Optional[str] = None) -> PaymentOrder:
        """
        Applies the gateway's verdict for an order. Safe to call repeatedly:
        an order that is already paid is returned unchanged.

        A paid order extends the subscription by the plan length, starting from
        the current expiry when it is still in the future.
        """
        stmt = select(PaymentOrder).where(PaymentOrder.id == order_id)
        if user_id:
            stmt = stmt.where(PaymentOrder.user_id == user_id)
        try:
            order = (await self.db.execute(stmt.with_for_update())).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if order is None:
            raise PaymentOrderNotFoundError()
        if order.status == PaymentStatus.PAID.value:
            return order

        status = PaymentStatus(status)
        if status == PaymentStatus.FAILED:
            order.status = PaymentStatus.FAILED.value
            await self._commit()
            logger.warning(f"Payment failed for order {order_id}")
            return order
        if status != PaymentStatus.PAID:
            return order

        profile = (await self.db.execute(select(Profile).where(Profile.id == order.user_id))).scalar_one()
        plan = PAID_PLANS[SubscriptionTier(order.plan)]
        now = utc_now()

        start = now
        if profile.has_active_subscription(now):
            start = max(now, profile.subscription_expires_at)

        order.status = PaymentStatus.PAID.value
        order.paid_at = now
        profile.subscription_active = True
        profile.subscription_tier = plan.id.value
        profile.subscription_expires_at = add_months(start, plan.months)

        await self._commit()
        logger.info(
            f"Subscription {plan.id.value} active until {profile.subscription_expires_at}",
            extra={'owner_id': profile.id},
        )
        return order

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
