import re
from decimal import Decimal

from services.exceptions import FleetValidationError

PHONE_DIGITS = 10
OTP_DIGITS = 6

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_PHONE = re.compile(r"^[0-9]{10}$")
_REGISTRATION = re.compile(r"^[A-Z0-9]{4,12}$")
_PAN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
_SEPARATORS = re.compile(r"[\s\-.]")


class BusinessRules:
    MIN_AMOUNT = Decimal("0")
    MAX_AMOUNT = Decimal("9999999999.99")

    @staticmethod
    def normalize_phone(phone: str) -> str:
        """Strips separators and an Indian country code; returns 10 digits or raises."""
        digits = _PHONE_SEPARATORS.sub("", phone or "")
        if digits.startswith("+91"):
            digits = digits[3:]
        elif len(digits) == PHONE_DIGITS + 2 and digits.startswith("91"):
            digits = digits[2:]
        if not _PHONE.match(digits):
            raise FleetValidationError("Please enter a valid 10-digit phone number", "phone")
        return digits

    @staticmethod
    def validate_otp_code(code: str) -> str:
        code = (code or "").strip()
        if len(code) != OTP_DIGITS or not code.isdigit():
            raise FleetValidationError(f"Please enter the {OTP_DIGITS}-digit OTP", "code")
        return code

    @staticmethod
    def normalize_registration(number: str) -> str:
        """'ka 01-ab 1234' -> 'KA01AB1234'"""
        normalized = _SEPARATORS.sub("", number or "").upper()
        if not _REGISTRATION.match(normalized):
            raise FleetValidationError("Please enter a valid vehicle registration number", "registration_number")
        return normalized

    @staticmethod
    def normalize_pan(pan: str) -> str:
        normalized = (pan or "").strip().upper()
        if not _PAN.match(normalized):
            raise FleetValidationError("Please enter a valid 10-character PAN number", "pan_number")
        return normalized

    @staticmethod
    def validate_amount(amount: Decimal, field: str = "amount") -> Decimal:
        if amount is None:
            raise FleetValidationError("Amount is required", field)
        if amount < BusinessRules.MIN_AMOUNT:
            raise FleetValidationError("Amount cannot be negative", field)
        if amount > BusinessRules.MAX_AMOUNT:
            raise FleetValidationError("Amount is too large", field)
        return amount

    @staticmethod
    def require_text(value: str, field: str, label: str) -> str:
        value = (value or "").strip()
        if not value:
            raise FleetValidationError(f"{label} is required", field)
        return value
