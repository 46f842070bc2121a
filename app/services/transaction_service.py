from enum import Enum
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.metrics import track_performance
from models.enums import TransactionCategory, TransactionType, category_for
from models.transaction import FleetTransaction
from schemas.transaction import TransactionCreate, TransactionUpdate
from services.exceptions import (
    DatabaseQueryError,
    FleetValidationError,
    TransactionNotFoundError,
)
from services.vehicle_service import VehicleService


class TransactionService:
    def __init__(self, db: AsyncSession, owner_id: str):
        self.db = db
        self.owner_id = owner_id
        self.vehicles = VehicleService(db, owner_id)

    @track_performance(service_name="TransactionService")
    async def list_transactions_core(self) -> List[FleetTransaction]:
        try:
            result = await self.db.execute(
                select(FleetTransaction)
                .where(FleetTransaction.owner_id == self.owner_id)
                .order_by(FleetTransaction.date.desc(), FleetTransaction.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

    async def get_transaction_core(self, transaction_id: str) -> FleetTransaction:
        try:
            tx = (
                await self.db.execute(
                    select(FleetTransaction).where(
                        FleetTransaction.id == transaction_id,
                        FleetTransaction.owner_id == self.owner_id,
                    )
                )
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if not tx:
            raise TransactionNotFoundError()
        return tx

    async def _vehicle_number(self, vehicle_id: Optional[str]) -> Optional[str]:
        # Raises VehicleNotFoundError for another owner's vehicle
        if not vehicle_id:
            return None
        vehicle = await self.vehicles.get_vehicle_core(vehicle_id)
        return vehicle.registration_number

    @track_performance(service_name="TransactionService")
    async def add_transaction_core(self, data: TransactionCreate) -> FleetTransaction:
        tx = FleetTransaction(
            owner_id=self.owner_id,
            date=data.date,
            vehicle_id=data.vehicle_id or None,
            vehicle_number=await self._vehicle_number(data.vehicle_id),
            type=data.type.value,
            amount=data.amount,
            description=data.description,
            reference=data.reference,
            location=data.location,
            category=data.category.value,
            payment_method=data.payment_method.value,
            is_manual=data.is_manual,
            created_at=utc_now(),
        )
        self.db.add(tx)
        await self._commit()
        return tx

    @track_performance(service_name="TransactionService")
    async def update_transaction_core(self, transaction_id: str, data: TransactionUpdate) -> FleetTransaction:
        tx = await self.get_transaction_core(transaction_id)
        changes = data.model_dump(exclude_unset=True)

        for key in ("date", "type", "amount", "description", "payment_method"):
            if key in changes and changes[key] is None:
                raise FleetValidationError(f"{key} cannot be empty", field=key)

        new_type = TransactionType(changes.get("type") or tx.type)
        expected = category_for(new_type)
        if changes.get("category") is not None:
            if TransactionCategory(changes["category"]) != expected:
                raise FleetValidationError(
                    f"A {new_type.value} transaction must be categorised as {expected.value}",
                    field="category",
                )
        changes["category"] = expected

        if "vehicle_id" in changes:
            changes["vehicle_id"] = changes["vehicle_id"] or None
            changes["vehicle_number"] = await self._vehicle_number(changes["vehicle_id"])

        for key, value in changes.items():
            setattr(tx, key, value.value if isinstance(value, Enum) else value)

        await self._commit()
        return tx

    @track_performance(service_name="TransactionService")
    async def remove_transaction_core(self, transaction_id: str) -> None:
        tx = await self.get_transaction_core(transaction_id)
        await self.db.delete(tx)
        await self._commit()

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
