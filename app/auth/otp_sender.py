import logging
from typing import Optional

import httpx

from core.environment import Settings
from services.exceptions import OtpDeliveryError

logger = logging.getLogger(__name__)

OTP_MESSAGE = "{code} is your MyFleet verification code. It expires in {minutes} minutes."


class OtpSender:
    """Delivers a verification code to a phone number. Raises OtpDeliveryError on failure."""

    async def send(self, phone: str, code: str, expiry_minutes: int) -> None:
        raise NotImplementedError


class LoggingOtpSender(OtpSender):
    """Development sender: writes the code to the log instead of sending an SMS."""

    async def send(self, phone: str, code: str, expiry_minutes: int) -> None:
        logger.warning(f"SMS gateway not configured; OTP for {phone} is {code}")


class HttpSmsOtpSender(OtpSender):
    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, phone: str, code: str, expiry_minutes: int) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "to": f"+91{phone}",
            "message": OTP_MESSAGE.format(code=code, minutes=expiry_minutes),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"SMS gateway request failed: {e}")
            raise OtpDeliveryError() from e

        logger.info("OTP dispatched", extra={'phone_suffix': phone[-4:]})


def get_otp_sender(settings: Settings) -> OtpSender:
    if settings.sms_gateway_url:
        return HttpSmsOtpSender(settings.sms_gateway_url, settings.sms_api_key)
    if settings.production:
        raise RuntimeError("SMS_GATEWAY_URL is required in production")
    return LoggingOtpSender()
