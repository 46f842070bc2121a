from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.metrics import track_performance
from models.driver import Driver
from models.vehicle import Vehicle
from schemas.driver import AddDriverRequest, UpdateDriverRequest
from services.exceptions import (
    DatabaseQueryError,
    DriverNotAssignedError,
    DriverNotFoundError,
    FleetValidationError,
)
from services.vehicle_service import VehicleService


class DriverService:
    """
    Owner-scoped driver persistence and vehicle assignment.

    The vehicle↔driver link is stored twice (`Vehicle.driver_id` and
    `Driver.assigned_vehicle_ids`). Every method that touches one side
    updates the other in the same commit.
    """

    def __init__(self, db: AsyncSession, owner_id: str):
        self.db = db
        self.owner_id = owner_id
        self.vehicles = VehicleService(db, owner_id)

    @track_performance(service_name="DriverService")
    async def list_drivers_core(self) -> List[Driver]:
        try:
            result = await self.db.execute(
                select(Driver)
                .where(Driver.owner_id == self.owner_id)
                .order_by(Driver.created_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

    async def get_driver_core(self, driver_id: str, for_update: bool = False) -> Driver:
        stmt = select(Driver).where(Driver.id == driver_id, Driver.owner_id == self.owner_id)
        if for_update:
            stmt = stmt.with_for_update()
        try:
            driver = (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if not driver:
            raise DriverNotFoundError()
        return driver

    @track_performance(service_name="DriverService")
    async def add_driver_core(self, data: AddDriverRequest) -> Driver:
        driver = Driver(
            owner_id=self.owner_id,
            name=data.name,
            license_number=data.license_number,
            phone=data.phone,
            date_of_birth=data.date_of_birth,
            assigned_vehicle_ids=[],
            created_at=utc_now(),
        )
        self.db.add(driver)
        await self._commit()
        return driver

    @track_performance(service_name="DriverService")
    async def update_driver_core(self, driver_id: str, data: UpdateDriverRequest) -> Driver:
        driver = await self.get_driver_core(driver_id, for_update=True)
        changes = data.model_dump(exclude_unset=True)

        for key in ("name", "license_number", "phone"):
            if key in changes and changes[key] is None:
                raise FleetValidationError(f"{key} cannot be empty", field=key)

        for key, value in changes.items():
            setattr(driver, key, value)
        driver.updated_at = utc_now()

        await self._commit()
        return driver

    @track_performance(service_name="DriverService")
    async def remove_driver_core(self, driver_id: str) -> List[Vehicle]:
        """Deletes the driver and clears `driver_id` on every vehicle they drove. Returns those vehicles."""
        driver = await self.get_driver_core(driver_id, for_update=True)

        result = await self.db.execute(
            select(Vehicle).where(Vehicle.owner_id == self.owner_id, Vehicle.driver_id == driver.id)
        )
        vehicles = list(result.scalars().all())
        now = utc_now()
        for vehicle in vehicles:
            vehicle.driver_id = None
            vehicle.updated_at = now

        await self.db.delete(driver)
        await self._commit()
        return vehicles

    @track_performance(service_name="DriverService")
    async def assign_driver_core(self, vehicle_id: str, driver_id: str) -> Tuple[Vehicle, List[Driver]]:
        """
        Makes `driver_id` the driver of `vehicle_id`.

        A vehicle has at most one driver, so if someone else was driving it the
        vehicle is taken off their list. Both sides are written in one commit.

        Returns:
            The vehicle and every driver whose assignment list changed.
        """
        vehicle = await self.vehicles.get_vehicle_core(vehicle_id, for_update=True)
        driver = await self.get_driver_core(driver_id, for_update=True)
        now = utc_now()
        changed: List[Driver] = []

        if vehicle.driver_id and vehicle.driver_id != driver.id:
            previous = await self._find_driver(vehicle.driver_id)
            if previous:
                previous.assigned_vehicle_ids = [
                    v for v in (previous.assigned_vehicle_ids or []) if v != vehicle.id
                ]
                previous.updated_at = now
                changed.append(previous)

        vehicle.driver_id = driver.id
        vehicle.updated_at = now

        assigned = list(driver.assigned_vehicle_ids or [])
        if vehicle.id not in assigned:
            assigned.append(vehicle.id)
        driver.assigned_vehicle_ids = assigned
        driver.updated_at = now
        changed.append(driver)

        await self._commit()
        return vehicle, changed

    @track_performance(service_name="DriverService")
    async def unassign_driver_core(self, vehicle_id: str, driver_id: str) -> Tuple[Vehicle, Driver]:
        vehicle = await self.vehicles.get_vehicle_core(vehicle_id, for_update=True)
        driver = await self.get_driver_core(driver_id, for_update=True)
        assigned = list(driver.assigned_vehicle_ids or [])

        if vehicle.driver_id != driver.id and vehicle.id not in assigned:
            raise DriverNotAssignedError(field="driver_id")

        now = utc_now()
        if vehicle.driver_id == driver.id:
            vehicle.driver_id = None
            vehicle.updated_at = now
        driver.assigned_vehicle_ids = [v for v in assigned if v != vehicle.id]
        driver.updated_at = now

        await self._commit()
        return vehicle, driver

    async def _find_driver(self, driver_id: str) -> Optional[Driver]:
        result = await self.db.execute(
            select(Driver).where(Driver.id == driver_id, Driver.owner_id == self.owner_id)
        )
        return result.scalar_one_or_none()

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
