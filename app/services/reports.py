"""
Derived views over the cached domain collections.

Everything here is a pure function of its inputs and the supplied `today`:
no database access, no logging, no exceptions for well-formed input.
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.clock import today as clock_today
from models.enums import DocumentKind, DocumentStatus, TransactionCategory
from schemas.report import PnLPeriod

ZERO = Decimal("0")
DOCUMENT_SLOTS = len(DocumentKind)
GENERAL_LEDGER_LABEL = "General"


@dataclass(frozen=True)
class FinancialEntry:
    date: date
    revenue: Decimal = ZERO
    expenses: Decimal = ZERO


@dataclass(frozen=True)
class VehicleLedger:
    vehicle_id: Optional[str]
    registration_number: str
    financial_data: Tuple[FinancialEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProfitLoss:
    profit: Decimal
    loss: Decimal
    net_pnl: Decimal
    is_profit: bool


@dataclass(frozen=True)
class FleetOverview:
    total_vehicles: int
    total_balance: Decimal
    total_fines: int
    compliance_rate: int


def _get(obj: Any, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _as_date(value) -> Optional[date]:
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    if isinstance(value, datetime):
        return value.date()
    return value


def shift_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def pnl_window(period: PnLPeriod, today: date) -> Tuple[date, date]:
    """Inclusive (start, end) window for a period anchored at `today`."""
    if period == PnLPeriod.WEEKLY:
        return today - timedelta(days=7), today
    if period == PnLPeriod.MONTHLY:
        return shift_months(today, -1), today
    if period == PnLPeriod.YEARLY:
        return shift_months(today, -12), today
    # 'today' and anything unrecognised
    return today, today


def calculate_profit_loss(
    vehicles: Iterable[Any],
    period: PnLPeriod,
    today: Optional[date] = None,
) -> ProfitLoss:
    """
    Sums revenue and expenses of every vehicle entry dated inside the period window.

    Args:
        vehicles: objects or dicts exposing `financial_data`, a sequence of
                  `{date, revenue, expenses}` entries
        period: today | weekly | monthly | yearly
        today: anchor date, defaults to the current UTC date

    Returns:
        ProfitLoss with profit = revenue, loss = expenses, net_pnl = revenue - expenses
    """
    today = _as_date(today) or clock_today()
    try:
        period = PnLPeriod(period)
    except ValueError:
        period = PnLPeriod.TODAY
    start, end = pnl_window(period, today)

    total_revenue = ZERO
    total_expenses = ZERO

    for vehicle in vehicles:
        for entry in _get(vehicle, "financial_data", None) or ():
            entry_date = _as_date(_get(entry, "date"))
            if entry_date is None or not (start <= entry_date <= end):
                continue
            total_revenue += _as_decimal(_get(entry, "revenue"))
            total_expenses += _as_decimal(_get(entry, "expenses"))

    net = total_revenue - total_expenses
    return ProfitLoss(
        profit=total_revenue,
        loss=total_expenses,
        net_pnl=net,
        is_profit=net >= 0,
    )


def build_vehicle_ledgers(vehicles: Sequence[Any], transactions: Iterable[Any]) -> List[VehicleLedger]:
    """Groups transactions into per-vehicle daily revenue/expense entries.

    Transactions without a known vehicle are collected in a trailing "General" ledger.
    """
    known = {_get(v, "id"): _get(v, "registration_number") for v in vehicles}
    # vehicle id (None = general) -> date -> [revenue, expenses]
    grouped: Dict[Optional[str], Dict[date, List[Decimal]]] = defaultdict(
        lambda: defaultdict(lambda: [ZERO, ZERO])
    )

    for tx in transactions:
        vehicle_id = _get(tx, "vehicle_id")
        key = vehicle_id if vehicle_id in known else None
        bucket = grouped[key][_as_date(_get(tx, "date"))]
        amount = _as_decimal(_get(tx, "amount"))
        if TransactionCategory(_get(tx, "category")) == TransactionCategory.INCOME:
            bucket[0] += amount
        else:
            bucket[1] += amount

    def entries_for(key) -> Tuple[FinancialEntry, ...]:
        return tuple(
            FinancialEntry(date=day, revenue=rev, expenses=exp)
            for day, (rev, exp) in sorted(grouped.get(key, {}).items())
        )

    ledgers = [
        VehicleLedger(vehicle_id=vid, registration_number=number, financial_data=entries_for(vid))
        for vid, number in known.items()
    ]
    if None in grouped:
        ledgers.append(VehicleLedger(None, GENERAL_LEDGER_LABEL, entries_for(None)))
    return ledgers


def _document_status(document: Any) -> str:
    status = _get(document, "status")
    return status.value if isinstance(status, DocumentStatus) else status


def calculate_fleet_overview(vehicles: Sequence[Any]) -> FleetOverview:
    """Vehicle count, balance and fine totals, and the document compliance percentage."""
    total_vehicles = len(vehicles)
    total_balance = sum((_as_decimal(_get(v, "prepaid_balance")) for v in vehicles), ZERO)
    total_fines = sum(int(_get(v, "fine_count") or 0) for v in vehicles)

    if total_vehicles == 0:
        return FleetOverview(0, ZERO, 0, 0)

    uploaded = 0
    for vehicle in vehicles:
        documents = _get(vehicle, "documents") or {}
        values = documents.values() if isinstance(documents, dict) else documents
        uploaded += sum(
            1 for doc in values if _document_status(doc) == DocumentStatus.UPLOADED.value
        )

    rate = (Decimal(uploaded) * 100 / Decimal(DOCUMENT_SLOTS * total_vehicles)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return FleetOverview(
        total_vehicles=total_vehicles,
        total_balance=total_balance,
        total_fines=total_fines,
        compliance_rate=int(rate),
    )
