from enum import Enum


class UserRole(str, Enum):
    OWNER = "owner"
    DRIVER = "driver"


class DocumentKind(str, Enum):
    POLLUTION = "pollution"
    REGISTRATION = "registration"
    INSURANCE = "insurance"
    LICENSE = "license"


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    MISSING = "missing"
    EXPIRED = "expired"


class TransactionType(str, Enum):
    REVENUE = "revenue"
    FUEL = "fuel"
    PARKING = "parking"
    TOLL = "toll"
    MAINTENANCE = "maintenance"
    INSURANCE = "insurance"
    ADD_MONEY = "add_money"
    PERMIT = "permit"
    FINE = "fine"
    MANUAL_INCOME = "manual_income"
    MANUAL_EXPENSE = "manual_expense"


class TransactionCategory(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


INCOME_TYPES = frozenset({TransactionType.REVENUE, TransactionType.MANUAL_INCOME})


def category_for(transaction_type: TransactionType) -> TransactionCategory:
    if transaction_type in INCOME_TYPES:
        return TransactionCategory.INCOME
    return TransactionCategory.EXPENSE


class PaymentMethod(str, Enum):
    CASH = "cash"
    UPI = "upi"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    FASTAG = "fastag"
    WALLET = "wallet"


class SubscriptionTier(str, Enum):
    TRIAL = "trial"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


class PaymentStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


class Language(str, Enum):
    ENGLISH = "en"
    HINDI = "hi"
    KANNADA = "kn"


class TripType(str, Enum):
    LOCAL = "local"
    INTERCITY = "intercity"
    CORPORATE = "corporate"
    AIRPORT = "airport"


class TripStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
