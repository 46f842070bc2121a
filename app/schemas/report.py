from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class PnLPeriod(str, Enum):
    TODAY = "today"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ProfitLossOut(BaseModel):
    period: PnLPeriod
    profit: Decimal
    loss: Decimal
    net_pnl: Decimal
    is_profit: bool


class FleetOverviewOut(BaseModel):
    total_vehicles: int
    total_balance: Decimal
    total_fines: int
    compliance_rate: int
