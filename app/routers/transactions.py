from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends

from auth.dependencies import get_transaction_collection
from exceptions import ValidationError, result_or_raise
from models.enums import TransactionType
from schemas.transaction import TransactionCreate, TransactionOut, TransactionUpdate
from services.collections import TransactionCollection
from services.transaction_filter import apply_filters, build_filters

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("", response_model=List[TransactionOut])
async def list_transactions(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    vehicle_id: Optional[str] = None,
    type: Optional[TransactionType] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    search: Optional[str] = None,
    refresh: bool = False,
    transactions: TransactionCollection = Depends(get_transaction_collection),
):
    """Lists transactions, defaulting to the last 30 days when no dates are given."""
    filters = build_filters(
        start_date=start_date,
        end_date=end_date,
        vehicle_id=vehicle_id,
        type=type,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
    )
    if filters.start_date > filters.end_date:
        raise ValidationError("Start date must be on or before end date.", "start_date")
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise ValidationError("Minimum amount cannot exceed maximum amount.", "min_amount")

    cached = result_or_raise(await transactions.list(refresh=refresh))
    return apply_filters(cached, filters)


@router.post("", response_model=TransactionOut, status_code=201)
async def add_transaction(
    body: TransactionCreate,
    transactions: TransactionCollection = Depends(get_transaction_collection),
):
    return result_or_raise(await transactions.add(body))


@router.patch("/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: str,
    body: TransactionUpdate,
    transactions: TransactionCollection = Depends(get_transaction_collection),
):
    return result_or_raise(await transactions.update(transaction_id, body))


@router.delete("/{transaction_id}")
async def remove_transaction(
    transaction_id: str,
    transactions: TransactionCollection = Depends(get_transaction_collection),
):
    return result_or_raise(await transactions.remove(transaction_id))
