from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.metrics import track_performance
from models.driver import Driver
from models.enums import DocumentKind, PaymentMethod, TransactionCategory, TransactionType
from models.transaction import FleetTransaction
from models.vehicle import Vehicle, VehicleDocument
from schemas.vehicle import (
    AddVehicleRequest,
    BalanceTopUpRequest,
    DocumentUpdateRequest,
    UpdateVehicleRequest,
)
from services.exceptions import (
    DatabaseQueryError,
    DuplicateRegistrationError,
    FleetValidationError,
    VehicleNotFoundError,
)

DEFAULT_MODEL = "Not specified"


class VehicleService:
    """
    Owner-scoped vehicle persistence.

    Every query is filtered by `owner_id`; a vehicle belonging to another owner
    is indistinguishable from one that does not exist. Methods commit their own
    unit of work and raise domain errors; callers roll back on failure.
    """

    def __init__(self, db: AsyncSession, owner_id: str):
        self.db = db
        self.owner_id = owner_id

    @track_performance(service_name="VehicleService")
    async def list_vehicles_core(self) -> List[Vehicle]:
        try:
            result = await self.db.execute(
                select(Vehicle)
                .where(Vehicle.owner_id == self.owner_id)
                .order_by(Vehicle.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

    async def get_vehicle_core(self, vehicle_id: str, for_update: bool = False) -> Vehicle:
        stmt = select(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.owner_id == self.owner_id)
        if for_update:
            stmt = stmt.with_for_update()
        try:
            vehicle = (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if not vehicle:
            raise VehicleNotFoundError()
        return vehicle

    async def _ensure_unique_registration(self, registration_number: str, exclude_id: Optional[str] = None):
        stmt = select(Vehicle.id).where(
            Vehicle.owner_id == self.owner_id,
            Vehicle.registration_number == registration_number,
        )
        if exclude_id:
            stmt = stmt.where(Vehicle.id != exclude_id)
        if (await self.db.execute(stmt)).first():
            raise DuplicateRegistrationError(field="registration_number")

    async def stage_vehicle_core(self, data: AddVehicleRequest) -> Vehicle:
        """
        Adds a new vehicle with its four blank document slots to the session
        without committing, so callers can make it part of a larger unit of work.
        """
        await self._ensure_unique_registration(data.registration_number)

        now = utc_now()
        vehicle = Vehicle(
            owner_id=self.owner_id,
            registration_number=data.registration_number,
            model=data.model or DEFAULT_MODEL,
            prepaid_balance=Decimal("0"),
            fastag_linked=bool(data.paytap_activation_code),
            gps_linked=False,
            fine_count=0,
            created_at=now,
        )
        vehicle.documents = Vehicle.blank_documents()
        self.db.add(vehicle)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateRegistrationError(field="registration_number") from e
        return vehicle

    @track_performance(service_name="VehicleService")
    async def add_vehicle_core(self, data: AddVehicleRequest) -> Vehicle:
        vehicle = await self.stage_vehicle_core(data)
        await self._commit()
        return vehicle

    @track_performance(service_name="VehicleService")
    async def update_vehicle_core(self, vehicle_id: str, data: UpdateVehicleRequest) -> Vehicle:
        vehicle = await self.get_vehicle_core(vehicle_id, for_update=True)
        changes = data.model_dump(exclude_unset=True)

        if "registration_number" in changes:
            if changes["registration_number"] is None:
                raise FleetValidationError("Vehicle number is required", field="registration_number")
            await self._ensure_unique_registration(changes["registration_number"], exclude_id=vehicle.id)

        for key in ("prepaid_balance", "fine_count", "fastag_linked", "gps_linked"):
            if key in changes and changes[key] is None:
                raise FleetValidationError(f"{key} cannot be empty", field=key)

        if "model" in changes:
            changes["model"] = (changes["model"] or "").strip() or DEFAULT_MODEL

        for key, value in changes.items():
            setattr(vehicle, key, value)
        vehicle.updated_at = utc_now()

        await self._commit()
        return vehicle

    @track_performance(service_name="VehicleService")
    async def remove_vehicle_core(self, vehicle_id: str) -> Optional[Driver]:
        """Deletes the vehicle and strips it from its driver's assignments. Returns that driver, if any."""
        vehicle = await self.get_vehicle_core(vehicle_id, for_update=True)
        driver = None

        if vehicle.driver_id:
            driver = (
                await self.db.execute(
                    select(Driver).where(Driver.id == vehicle.driver_id, Driver.owner_id == self.owner_id)
                )
            ).scalar_one_or_none()
            if driver:
                driver.assigned_vehicle_ids = [v for v in (driver.assigned_vehicle_ids or []) if v != vehicle.id]
                driver.updated_at = utc_now()

        await self.db.delete(vehicle)
        await self._commit()
        return driver

    @track_performance(service_name="VehicleService")
    async def update_document_core(self, vehicle_id: str, kind: DocumentKind, data: DocumentUpdateRequest) -> Vehicle:
        vehicle = await self.get_vehicle_core(vehicle_id, for_update=True)

        document = next((doc for doc in vehicle.documents if doc.kind == kind.value), None)
        if document is None:
            # Older rows may be missing a slot
            document = VehicleDocument(kind=kind.value)
            vehicle.documents.append(document)

        document.status = data.status.value
        document.expiry_date = data.expiry_date
        vehicle.updated_at = utc_now()

        await self._commit()
        return vehicle

    @track_performance(service_name="VehicleService")
    async def top_up_balance_core(self, vehicle_id: str, data: BalanceTopUpRequest) -> Tuple[Vehicle, FleetTransaction]:
        """Raises the prepaid balance and records the matching add_money expense in one commit."""
        vehicle = await self.get_vehicle_core(vehicle_id, for_update=True)
        now = utc_now()

        try:
            method = PaymentMethod(data.payment_method)
        except ValueError:
            raise FleetValidationError("Unsupported payment method", field="payment_method")

        vehicle.prepaid_balance = Decimal(vehicle.prepaid_balance or 0) + data.amount
        vehicle.updated_at = now

        transaction = FleetTransaction(
            owner_id=self.owner_id,
            date=now.date(),
            vehicle_id=vehicle.id,
            vehicle_number=vehicle.registration_number,
            type=TransactionType.ADD_MONEY.value,
            amount=data.amount,
            description=f"Prepaid balance top-up for {vehicle.registration_number}",
            category=TransactionCategory.EXPENSE.value,
            payment_method=method.value,
            is_manual=False,
            created_at=now,
        )
        self.db.add(transaction)

        await self._commit()
        return vehicle, transaction

    async def _commit(self):
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # Lost a race with a concurrent insert of the same registration
            raise DuplicateRegistrationError(field="registration_number") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
