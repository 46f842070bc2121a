import json
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from core.clock import utc_now
from models.enums import PaymentStatus, SubscriptionTier
from models.payment import PaymentOrder
from models.user import Profile
from services.exceptions import (
    FleetValidationError,
    OnboardingRequiredError,
    PaymentGatewayError,
    PaymentOrderNotFoundError,
    SubscriptionAlreadyActiveError,
    TrialAlreadyUsedError,
)
from services.payment_gateway import PaymentGateway, sign_webhook, verify_webhook_signature
from services.subscription_service import PAID_PLANS, SubscriptionService, add_months

RETURN_URL = "https://app.myfleet.test/subscription/return"


@pytest.fixture
def service(async_db_session, test_settings, mock_payment_gateway) -> SubscriptionService:
    return SubscriptionService(async_db_session, test_settings, mock_payment_gateway)


@pytest.fixture
async def owner(async_db_session, owner_id) -> Profile:
    return (await async_db_session.execute(select(Profile).where(Profile.id == owner_id))).scalar_one()


def test_plans(service):
    plans = {plan.id: plan for plan in service.list_plans()}
    assert plans[SubscriptionTier.TRIAL].price == 0
    assert plans[SubscriptionTier.TRIAL].days == 30
    assert plans[SubscriptionTier.SEMIANNUAL].price == Decimal("12000")
    assert plans[SubscriptionTier.ANNUAL].months == 12


def test_add_months_clamps_day():
    assert add_months(datetime(2024, 8, 31, 10, 30), 6) == datetime(2025, 2, 28, 10, 30)


class TestTrial:

    async def test_trial_activates_once(self, service, owner):
        profile = await service.start_trial_core(owner)

        assert profile.subscription_tier == "trial"
        assert profile.trial_used is True
        assert profile.has_active_subscription()
        remaining = profile.subscription_expires_at - utc_now()
        assert timedelta(days=29) < remaining <= timedelta(days=30)

        with pytest.raises(TrialAlreadyUsedError):
            await service.start_trial_core(profile)

    async def test_trial_requires_onboarding(self, service, async_db_session):
        profile = Profile(phone="9000000003", is_onboarded=False)
        async_db_session.add(profile)
        await async_db_session.commit()

        with pytest.raises(OnboardingRequiredError):
            await service.start_trial_core(profile)

    async def test_trial_refused_while_paid_plan_active(self, service, owner, async_db_session):
        owner.subscription_active = True
        owner.subscription_tier = "annual"
        owner.subscription_expires_at = utc_now() + timedelta(days=100)
        await async_db_session.commit()

        with pytest.raises(SubscriptionAlreadyActiveError):
            await service.start_trial_core(owner)


class TestCheckout:

    async def test_creates_order_and_gateway_session(self, service, owner, mock_payment_gateway, async_db_session):
        checkout = await service.create_checkout_core(owner, SubscriptionTier.SEMIANNUAL, RETURN_URL)

        assert checkout["payment_session_id"] == "session_test_123"
        order = (await async_db_session.execute(select(PaymentOrder))).scalar_one()
        assert order.id == checkout["order_id"]
        assert order.amount == Decimal("12000")
        assert order.status == "created"

        kwargs = mock_payment_gateway.create_order.call_args.kwargs
        assert kwargs["order_id"] == order.id
        assert kwargs["customer_phone"] == owner.phone
        assert kwargs["return_url"] == RETURN_URL

    async def test_trial_is_not_purchasable(self, service, owner):
        with pytest.raises(FleetValidationError) as exc_info:
            await service.create_checkout_core(owner, SubscriptionTier.TRIAL, RETURN_URL)
        assert exc_info.value.field == "plan"

    async def test_gateway_failure_discards_order(self, service, owner, mock_payment_gateway, async_db_session):
        mock_payment_gateway.create_order.side_effect = PaymentGatewayError()

        with pytest.raises(PaymentGatewayError):
            await service.create_checkout_core(owner, SubscriptionTier.ANNUAL, RETURN_URL)

        assert (await async_db_session.execute(select(PaymentOrder))).scalars().all() == []

    async def test_unconfigured_gateway_refuses(self, test_settings):
        gateway = PaymentGateway(test_settings.__class__())
        assert not gateway.configured
        with pytest.raises(PaymentGatewayError):
            await gateway.create_order("order_1", Decimal("1"), "cust", "9876543210", RETURN_URL)


class TestConfirmPayment:

    async def checkout(self, service, owner, plan=SubscriptionTier.SEMIANNUAL) -> str:
        return (await service.create_checkout_core(owner, plan, RETURN_URL))["order_id"]

    async def test_paid_order_activates_plan(self, service, owner):
        order_id = await self.checkout(service, owner)

        order = await service.confirm_payment_core(order_id, PaymentStatus.PAID)

        assert order.status == "paid"
        assert owner.subscription_tier == "semiannual"
        assert owner.has_active_subscription()

    async def test_confirmation_is_idempotent(self, service, owner):
        order_id = await self.checkout(service, owner)

        await service.confirm_payment_core(order_id, PaymentStatus.PAID)
        expires = owner.subscription_expires_at
        await service.confirm_payment_core(order_id, PaymentStatus.PAID)
        await service.confirm_payment_core(order_id, PaymentStatus.FAILED)

        assert owner.subscription_expires_at == expires
        order = await service.confirm_payment_core(order_id, PaymentStatus.PAID)
        assert order.status == "paid"

    async def test_renewal_extends_from_current_expiry(self, service, owner, async_db_session):
        current_expiry = utc_now() + timedelta(days=10)
        owner.subscription_active = True
        owner.subscription_tier = "trial"
        owner.subscription_expires_at = current_expiry
        await async_db_session.commit()

        order_id = await self.checkout(service, owner, SubscriptionTier.ANNUAL)
        await service.confirm_payment_core(order_id, PaymentStatus.PAID)

        assert owner.subscription_expires_at == add_months(current_expiry, 12)

    async def test_failed_payment_grants_nothing(self, service, owner):
        order_id = await self.checkout(service, owner)

        order = await service.confirm_payment_core(order_id, PaymentStatus.FAILED)

        assert order.status == "failed"
        assert not owner.has_active_subscription()

    async def test_other_users_order_is_not_found(self, service, owner):
        order_id = await self.checkout(service, owner)
        with pytest.raises(PaymentOrderNotFoundError):
            await service.confirm_payment_core(order_id, PaymentStatus.PAID, user_id="someone-else")


class TestWebhook:

    def test_signature_roundtrip(self):
        body = b'{"order_id": "order_1", "status": "paid"}'
        signature = sign_webhook("whsec_test", "1718000000", body)

        assert verify_webhook_signature("whsec_test", "1718000000", body, signature)
        assert not verify_webhook_signature("whsec_test", "1718000001", body, signature)
        assert not verify_webhook_signature(None, "1718000000", body, signature)

    async def test_signed_webhook_confirms_order(self, async_client, service, owner):
        order_id = (await service.create_checkout_core(owner, SubscriptionTier.ANNUAL, RETURN_URL))["order_id"]
        body = json.dumps({"order_id": order_id, "status": "paid"}).encode()

        resp = await async_client.post(
            "/subscriptions/webhook",
            content=body,
            headers={
                "content-type": "application/json",
                "x-webhook-timestamp": "1718000000",
                "x-webhook-signature": sign_webhook("whsec_test", "1718000000", body),
            },
        )

        assert resp.status_code == 200, resp.text
        assert resp.json() == {"order_id": order_id, "status": "paid"}
        assert owner.subscription_tier == "annual"

    async def test_bad_signature_is_rejected(self, async_client):
        resp = await async_client.post(
            "/subscriptions/webhook",
            content=b'{"order_id": "order_1", "status": "paid"}',
            headers={"x-webhook-timestamp": "1718000000", "x-webhook-signature": "forged"},
        )
        assert resp.status_code == 401

    async def test_malformed_body_is_rejected(self, async_client):
        body = b'{"order": 1}'
        resp = await async_client.post(
            "/subscriptions/webhook",
            content=body,
            headers={
                "x-webhook-timestamp": "1718000000",
                "x-webhook-signature": sign_webhook("whsec_test", "1718000000", body),
            },
        )
        assert resp.status_code == 400
