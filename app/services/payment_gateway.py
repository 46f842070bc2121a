import base64
import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Dict, Optional

import httpx

from core.environment import Settings
from services.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

API_VERSION = "2023-08-01"


class PaymentGateway:
    """Hosted-checkout client. Creates an order and returns what the browser needs to pay it."""

    def __init__(self, settings: Settings, timeout: float = 15.0):
        self.base_url = (settings.payment_gateway_url or "").rstrip("/")
        self.client_id = settings.payment_client_id
        self.client_secret = settings.payment_client_secret
        self.mode = settings.payment_mode
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.client_id and self.client_secret)

    async def create_order(
        self,
        order_id: str,
        amount: Decimal,
        customer_id: str,
        customer_phone: str,
        return_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Optional[str]]:
        if not self.configured:
            raise PaymentGatewayError("Payment gateway not configured")

        payload = {
            "order_id": order_id,
            "order_amount": float(amount),
            "order_currency": "INR",
            "customer_details": {
                "customer_id": customer_id,
                "customer_phone": customer_phone,
                "customer_email": customer_email,
            },
            "order_meta": {"return_url": return_url},
        }
        headers = {
            "x-client-id": self.client_id,
            "x-client-secret": self.client_secret,
            "x-api-version": API_VERSION,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/orders", json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Payment gateway order creation failed for {order_id}: {e}")
            raise PaymentGatewayError() from e

        session_id = body.get("payment_session_id")
        link = body.get("payment_link")
        if not session_id and not link:
            logger.error(f"Payment gateway returned neither session nor link for {order_id}")
            raise PaymentGatewayError()

        return {"payment_session_id": session_id, "payment_link": link, "mode": self.mode}


def sign_webhook(secret: str, timestamp: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(secret: Optional[str], timestamp: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    if not secret or not timestamp or not signature:
        return False
    return hmac.compare_digest(sign_webhook(secret, timestamp, body), signature)
