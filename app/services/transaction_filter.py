from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from core.clock import today as clock_today
from models.enums import TransactionType

DEFAULT_WINDOW_DAYS = 30


@dataclass(frozen=True)
class TransactionFilters:
    start_date: date
    end_date: date
    vehicle_id: Optional[str] = None
    type: Optional[TransactionType] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None


def default_filters(today: Optional[date] = None) -> TransactionFilters:
    """The last 30 days, inclusive of today."""
    today = today or clock_today()
    return TransactionFilters(start_date=today - timedelta(days=DEFAULT_WINDOW_DAYS), end_date=today)


def clear_filters(today: Optional[date] = None) -> TransactionFilters:
    """Clearing resets to the default window, never to an unbounded range."""
    return default_filters(today)


def build_filters(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
    **criteria,
) -> TransactionFilters:
    """Fills whichever date bound is missing from the default window."""
    defaults = default_filters(today)
    search = criteria.pop("search", None)
    return replace(
        defaults,
        start_date=start_date or defaults.start_date,
        end_date=end_date or defaults.end_date,
        search=search.strip() if search and search.strip() else None,
        **criteria,
    )


def _matches(tx: Any, filters: TransactionFilters) -> bool:
    if not (filters.start_date <= tx.date <= filters.end_date):
        return False
    if filters.vehicle_id and tx.vehicle_id != filters.vehicle_id:
        return False
    if filters.type and TransactionType(tx.type) != TransactionType(filters.type):
        return False
    if filters.min_amount is not None and tx.amount < filters.min_amount:
        return False
    if filters.max_amount is not None and tx.amount > filters.max_amount:
        return False
    if filters.search:
        needle = filters.search.lower()
        haystacks = (tx.description or "", tx.location or "")
        if not any(needle in text.lower() for text in haystacks):
            return False
    return True


def apply_filters(transactions: Iterable[Any], filters: TransactionFilters) -> List[Any]:
    return [tx for tx in transactions if _matches(tx, filters)]
