from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import CurrentSession, require_permission
from auth.rbac import Permission
from core.db import get_db
from exceptions import result_or_raise
from schemas.report import FleetOverviewOut, PnLPeriod, ProfitLossOut
from services.collections import TransactionCollection, VehicleCollection
from services.reports import build_vehicle_ledgers, calculate_fleet_overview, calculate_profit_loss

router = APIRouter(prefix="/reports", tags=["reports"])

require_reports = require_permission(Permission.VIEW_REPORTS)


async def _ledgers(db: AsyncSession, current: CurrentSession):
    vehicles = result_or_raise(await VehicleCollection(db, current.store).list())
    transactions = result_or_raise(await TransactionCollection(db, current.store).list())
    return build_vehicle_ledgers(vehicles, transactions)


@router.get("/pnl", response_model=ProfitLossOut)
async def profit_and_loss(
    period: PnLPeriod = PnLPeriod.MONTHLY,
    current: CurrentSession = Depends(require_reports),
    db: AsyncSession = Depends(get_db),
):
    pnl = calculate_profit_loss(await _ledgers(db, current), period)
    return ProfitLossOut(
        period=period,
        profit=pnl.profit,
        loss=pnl.loss,
        net_pnl=pnl.net_pnl,
        is_profit=pnl.is_profit,
    )


@router.get("/ledgers")
async def vehicle_ledgers(
    current: CurrentSession = Depends(require_reports),
    db: AsyncSession = Depends(get_db),
) -> List[dict]:
    """Per-vehicle daily revenue and expenses; unlinked transactions appear under "General"."""
    return [
        {
            "vehicle_id": ledger.vehicle_id,
            "registration_number": ledger.registration_number,
            "financial_data": [
                {"date": entry.date, "revenue": entry.revenue, "expenses": entry.expenses}
                for entry in ledger.financial_data
            ],
        }
        for ledger in await _ledgers(db, current)
    ]


@router.get("/fleet-overview", response_model=FleetOverviewOut)
async def fleet_overview(
    current: CurrentSession = Depends(require_reports),
    db: AsyncSession = Depends(get_db),
):
    vehicles = result_or_raise(await VehicleCollection(db, current.store).list())
    overview = calculate_fleet_overview(vehicles)
    return FleetOverviewOut(
        total_vehicles=overview.total_vehicles,
        total_balance=overview.total_balance,
        total_fines=overview.total_fines,
        compliance_rate=overview.compliance_rate,
    )
